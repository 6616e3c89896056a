"""Cross-provider playlist transfer: recreate a playlist and match its tracks."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from tunetransfer.errors import AuthExpired, NoMatch
from tunetransfer.models import ItemType, LibraryItem, OutcomeStatus, TransferOutcome
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.playlists")


class PlaylistTransfer:
    """
    Copy one source playlist into the target catalog.

    Tracks are matched one by one with the same resolver the orchestrator
    uses for favorites. Unmatched tracks only reduce the insert count; a
    playlist with tracks of which none matched is a failed outcome. When
    ``update_existing`` is on and the target already has a playlist with the
    same name and owns it, only tracks missing from it are inserted.
    """

    def __init__(
        self,
        source_adapter: Optional[CatalogAdapter],
        target_adapter: CatalogAdapter,
        resolve: Callable[[LibraryItem, ItemType], str],
        options
    ):
        self.source_adapter = source_adapter
        self.target_adapter = target_adapter
        self.resolve = resolve
        self.options = options
        self._target_playlists: Optional[Dict[str, str]] = None

    def transfer(self, playlist: LibraryItem) -> TransferOutcome:
        """Transfer a single playlist and return its outcome."""
        tracks = self.source_adapter.get_playlist_tracks(playlist.id)
        logger.info(f"Transferring playlist: {playlist.display_name} ({len(tracks)} tracks)")

        matched = self._match_tracks(tracks)
        logger.info(f"Playlist {playlist.display_name}: {len(matched)}/{len(tracks)} tracks matched")

        if tracks and not matched:
            return TransferOutcome(
                ItemType.PLAYLISTS,
                playlist,
                OutcomeStatus.FAILED,
                error_detail=f"No tracks matched (0/{len(tracks)})"
            )

        playlist_id, existing = self._target_playlist(playlist)
        to_add = [track_id for track_id in matched if track_id not in existing]
        if existing:
            logger.info(f"{len(matched) - len(to_add)} tracks already in target playlist")

        if to_add and not self.options.dry_run:
            self.target_adapter.add_tracks_to_playlist(playlist_id, to_add)
        logger.debug(f"Inserted {len(to_add)} tracks into {playlist_id}")

        return TransferOutcome(
            ItemType.PLAYLISTS,
            playlist,
            OutcomeStatus.ADDED,
            resolved_target_id=playlist_id
        )

    def _match_tracks(self, tracks: List[LibraryItem]) -> List[str]:
        """Resolve each track on the target. Order is kept; duplicates are dropped."""
        matched = []
        seen = set()
        for track in tracks:
            try:
                target_id = self.resolve(track, ItemType.TRACKS)
            except NoMatch:
                logger.debug(f"No match for playlist track: {track.display_name}")
                continue
            except AuthExpired:
                raise
            except Exception as e:
                logger.warning(f"Could not match playlist track {track.display_name}: {e}")
                continue

            if target_id not in seen:
                seen.add(target_id)
                matched.append(target_id)
        return matched

    def _target_playlist(self, playlist: LibraryItem) -> Tuple[Optional[str], Set[str]]:
        """
        Return the target playlist id and the track ids it already holds.

        In dry run an existing playlist is still looked up but none is created.
        """
        if self.options.update_existing:
            existing_id = self._existing_playlists().get(playlist.display_name)
            if existing_id:
                existing_tracks = {t.id for t in self.target_adapter.get_playlist_tracks(existing_id)}
                logger.info(
                    f"Found existing playlist with {len(existing_tracks)} tracks, "
                    f"will add missing tracks only"
                )
                return existing_id, existing_tracks

        if self.options.dry_run:
            return None, set()

        description = playlist.description or (
            f"Transferred from {self.source_adapter.provider.value.capitalize()} "
            f"on {datetime.now().strftime('%Y-%m-%d')}"
        )
        playlist_id = self.target_adapter.create_playlist(playlist.display_name, description)
        if self._target_playlists is not None:
            self._target_playlists[playlist.display_name] = playlist_id
        return playlist_id, set()

    def _existing_playlists(self) -> Dict[str, str]:
        """
        Playlists the target account owns, by name, fetched once per run.

        Followed playlists of other users are left out. First one wins on
        duplicate names.
        """
        if self._target_playlists is None:
            self._target_playlists = {}
            user_id = self.target_adapter.account.user_id
            for item in self.target_adapter.list_favorites(ItemType.PLAYLISTS):
                if item.owner_id != user_id:
                    continue
                self._target_playlists.setdefault(item.display_name, item.id)
        return self._target_playlists
