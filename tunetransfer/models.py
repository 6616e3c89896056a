"""Provider-independent data model shared by adapters, matcher and orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Provider(str, Enum):
    """Streaming services a transfer can read from or write to."""

    TIDAL = "tidal"
    QOBUZ = "qobuz"
    SPOTIFY = "spotify"


class ItemType(str, Enum):
    """Kinds of favorited entities."""

    TRACKS = "tracks"
    ALBUMS = "albums"
    ARTISTS = "artists"
    PLAYLISTS = "playlists"


# Playlists run first: they are the slowest and their failures should surface early.
TRANSFER_ORDER = [ItemType.PLAYLISTS, ItemType.TRACKS, ItemType.ALBUMS, ItemType.ARTISTS]


class OutcomeStatus(str, Enum):
    ADDED = "added"
    SKIPPED_NO_MATCH = "skipped_no_match"
    FAILED = "failed"


@dataclass(frozen=True)
class AccountRef:
    """An authenticated account on one provider. Re-login replaces it."""

    provider: Provider
    user_id: str
    credential: str = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        return {
            'provider': self.provider.value,
            'user_id': self.user_id,
            'credential': self.credential,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "AccountRef":
        return cls(
            provider=Provider(data['provider']),
            user_id=str(data['user_id']),
            credential=data['credential'],
        )


@dataclass(frozen=True)
class LibraryItem:
    """One favorited entity from a source library snapshot."""

    id: str
    display_name: str
    artists: List[str] = field(default_factory=list)
    album_name: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[str] = None

    def to_export(self) -> Dict[str, str]:
        return {'id': self.id, 'name': self.display_name}


@dataclass(frozen=True)
class MatchCandidate:
    """A search result from the target catalog, consumed right away by the matcher."""

    id: str
    display_name: str
    artists: List[str] = field(default_factory=list)
    album_name: Optional[str] = None
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass
class TransferOutcome:
    """Result of attempting one item during a run."""

    item_type: ItemType
    source_item: LibraryItem
    status: OutcomeStatus
    error_detail: Optional[str] = None
    resolved_target_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.ADDED

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'item_type': self.item_type.value,
            'id': self.source_item.id,
            'name': self.source_item.display_name,
            'status': self.status.value,
            'error': self.error_detail,
            'resolved_target_id': self.resolved_target_id,
        }
