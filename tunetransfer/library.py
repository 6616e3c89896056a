"""Library snapshots: fetch favorites, export them to JSON and restore them."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from tunetransfer.errors import AuthExpired, TransferError
from tunetransfer.models import TRANSFER_ORDER, ItemType, LibraryItem, Provider
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.report import TransferReport
from tunetransfer.transfer_service import TransferService
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.library")

LibrarySnapshot = Dict[ItemType, List[LibraryItem]]


def fetch_library(
    adapter: CatalogAdapter,
    item_types: Optional[Iterable[ItemType]] = None
) -> LibrarySnapshot:
    """
    Fetch the favorites of an account for each item type.

    A type that cannot be listed is logged and left empty so the other
    types still transfer. AuthExpired propagates.
    """
    types = [ItemType(t) for t in item_types] if item_types is not None else list(TRANSFER_ORDER)
    library: LibrarySnapshot = {}

    for item_type in types:
        try:
            library[item_type] = adapter.list_favorites(item_type)
        except AuthExpired:
            raise
        except TransferError as e:
            logger.error(f"Could not fetch {item_type.value} from {adapter.provider.value}: {e}")
            library[item_type] = []

    logger.info(
        f"Library snapshot from {adapter.provider.value}: "
        + ", ".join(f"{len(items)} {t.value}" for t, items in library.items())
    )
    return library


def library_counts(library: LibrarySnapshot) -> Dict[str, int]:
    return {t.value: len(library.get(t) or []) for t in TRANSFER_ORDER}


def export_library(
    library: LibrarySnapshot,
    provider: Optional[Provider] = None,
    exported_at: Optional[datetime] = None
) -> Dict:
    """
    Serialize a snapshot to the export document.

    Shape: ``{tracks: [{id, name}], artists, albums, playlists, exportedAt}``
    plus ``provider`` when known.
    """
    exported_at = exported_at or datetime.now(timezone.utc)
    export = {
        item_type.value: [item.to_export() for item in library.get(item_type) or []]
        for item_type in (ItemType.TRACKS, ItemType.ARTISTS, ItemType.ALBUMS, ItemType.PLAYLISTS)
    }
    export['exportedAt'] = exported_at.isoformat()
    if provider is not None:
        export['provider'] = Provider(provider).value
    return export


def save_export(export: Dict, filepath: Union[str, Path]) -> None:
    """Write an export document to a JSON file."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(export, f, indent=2, ensure_ascii=False)
    logger.info(f"Library exported to: {path}")


def load_export(source: Union[str, Path, Dict]) -> Tuple[LibrarySnapshot, Optional[Provider]]:
    """
    Read an export document from a file path or an already parsed dict.

    Returns:
        The snapshot and the provider it was taken from (None if not recorded)

    Raises:
        ValueError: If the document is not a valid export
    """
    if isinstance(source, dict):
        data = source
    else:
        with open(source, 'r', encoding='utf-8') as f:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError("Export must be a JSON object")

    library: LibrarySnapshot = {}
    for item_type in ItemType:
        entries = data.get(item_type.value) or []
        if not isinstance(entries, list):
            raise ValueError(f"Export field '{item_type.value}' must be a list")

        items = []
        for entry in entries:
            if not isinstance(entry, dict) or entry.get('id') in (None, ''):
                raise ValueError(f"Invalid {item_type.value} entry in export: {entry!r}")
            items.append(LibraryItem(id=str(entry['id']), display_name=str(entry.get('name') or '')))
        library[item_type] = items

    provider = Provider(data['provider']) if data.get('provider') else None
    return library, provider


def load_restore_snapshot(target_adapter: CatalogAdapter, export: Union[str, Path, Dict]) -> LibrarySnapshot:
    """
    Load an export for restoring into ``target_adapter``.

    Export ids are provider ids, so the export must come from the target's
    provider.

    Raises:
        ValueError: If the export was taken from another provider
    """
    library, provider = load_export(export)
    if provider is not None and provider != target_adapter.provider:
        raise ValueError(
            f"Export was taken from {provider.value}, cannot restore into {target_adapter.provider.value}"
        )
    return library


def restore_library(
    target_adapter: CatalogAdapter,
    export: Union[str, Path, Dict],
    item_types: Optional[Iterable[ItemType]] = None,
    options=None,
    progress_callback=None
) -> TransferReport:
    """
    Add every item of an export back into an account.

    The snapshot is fed through the orchestrator as a same-provider source.
    """
    library = load_restore_snapshot(target_adapter, export)
    service = TransferService(
        None,
        target_adapter,
        progress_callback=progress_callback,
        options=options,
        source_provider=target_adapter.provider
    )
    return service.run(library, item_types)
