"""Spotify catalog adapter on top of spotipy."""

from typing import Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from tunetransfer.models import ItemType, LibraryItem, MatchCandidate, Provider
from tunetransfer.providers.base import CatalogAdapter, owner_id_of
from tunetransfer.rate_governor import RateGovernor
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.providers.spotify")


class SpotifyClient(CatalogAdapter):
    """
    Client for the Spotify Web API using an OAuth access token.

    spotipy is handed a plain requests session, which bypasses its urllib3
    retry adapter. Every non-2xx status, 429 and 5xx included, surfaces as a
    SpotifyException carrying the real status and reaches the Rate Governor.
    """

    provider = Provider.SPOTIFY

    DEFAULT_MIN_INTERVAL = 0.5
    PAGE_SIZE = 50
    PLAYLIST_PAGE_SIZE = 100
    FAVORITE_BATCH_SIZES = {
        ItemType.TRACKS: 50,
        ItemType.ALBUMS: 50,
        ItemType.ARTISTS: 50,
        ItemType.PLAYLISTS: 1,
    }
    PLAYLIST_BATCH_SIZE = 100

    SEARCH_TYPES = {
        ItemType.TRACKS: 'track',
        ItemType.ALBUMS: 'album',
        ItemType.ARTISTS: 'artist',
        ItemType.PLAYLISTS: 'playlist',
    }

    def __init__(
        self,
        access_token: str,
        user_id: Optional[str] = None,
        governor: Optional[RateGovernor] = None,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sp: Optional[spotipy.Spotify] = None
    ):
        """
        Initialize Spotify client.

        Args:
            access_token: OAuth access token with library read/modify scopes
            user_id: Spotify user id (resolved through /me when omitted)
            governor: Shared Rate Governor
            min_interval: Pacing override when no governor is given
            session: HTTP transport handed to spotipy (a new one when omitted)
            sp: Preconfigured spotipy client (tests)
        """
        super().__init__(access_token, user_id=user_id, governor=governor, min_interval=min_interval)
        self.sp = sp or spotipy.Spotify(
            auth=access_token,
            requests_session=session or requests.Session(),
            retries=0,
            status_retries=0
        )

    def _call(self, func: Callable, *args, **kwargs):
        """Run one spotipy call under the governor with errors mapped to the taxonomy."""
        return self.governor.call(self._invoke, func, *args, **kwargs)

    def _invoke(self, func: Callable, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SpotifyException as e:
            logger.debug(f"spotify call {getattr(func, '__name__', func)} failed: {e}")
            self.raise_for_status(e.http_status, e.msg, e.headers)
            raise
        except requests.exceptions.RequestException as e:
            # spotipy lets transport errors through once its own retries are spent
            self.raise_for_status(None, str(e))
            raise

    def _fetch_user_id(self) -> str:
        user = self._call(self.sp.current_user)
        logger.debug(f"Spotify display name: {user.get('display_name')}")
        return str(user['id'])

    def _list_favorites(self, item_type: ItemType) -> List[LibraryItem]:
        if item_type == ItemType.ARTISTS:
            return self._followed_artists()

        if item_type == ItemType.PLAYLISTS:
            fetch, limit, key = self.sp.current_user_playlists, self.PAGE_SIZE, None
        elif item_type == ItemType.ALBUMS:
            fetch, limit, key = self.sp.current_user_saved_albums, self.PAGE_SIZE, 'album'
        else:
            fetch, limit, key = self.sp.current_user_saved_tracks, self.PAGE_SIZE, 'track'

        items = []
        offset = 0
        while True:
            results = self._call(fetch, limit=limit, offset=offset)
            for entry in results.get('items') or []:
                raw = entry.get(key) if key else entry
                parsed = self._parse_item(raw, item_type)
                if parsed:
                    items.append(parsed)

            if not results.get('next'):
                break
            offset += limit

        return items

    def _followed_artists(self) -> List[LibraryItem]:
        """Followed artists page by cursor, not by offset."""
        items = []
        after = None
        while True:
            results = self._call(self.sp.current_user_followed_artists, limit=self.PAGE_SIZE, after=after)
            section = results.get('artists') or {}
            for raw in section.get('items') or []:
                parsed = self._parse_item(raw, ItemType.ARTISTS)
                if parsed:
                    items.append(parsed)

            after = (section.get('cursors') or {}).get('after')
            if not section.get('next') or not after:
                break

        return items

    def _search(self, query: str, item_type: ItemType) -> List[MatchCandidate]:
        search_type = self.SEARCH_TYPES[item_type]
        results = self._call(self.sp.search, q=query, limit=self.SEARCH_LIMIT, type=search_type)
        section = results.get(f"{search_type}s") or {}

        candidates = []
        for raw in section.get('items') or []:
            parsed = self._parse_item(raw, item_type)
            if parsed:
                candidates.append(MatchCandidate(
                    id=parsed.id,
                    display_name=parsed.display_name,
                    artists=parsed.artists,
                    album_name=parsed.album_name,
                    raw=raw
                ))
        return candidates

    def _add_favorites(self, item_type: ItemType, ids: List[str]) -> None:
        if item_type == ItemType.TRACKS:
            self._call(self.sp.current_user_saved_tracks_add, tracks=ids)
        elif item_type == ItemType.ALBUMS:
            self._call(self.sp.current_user_saved_albums_add, albums=ids)
        elif item_type == ItemType.ARTISTS:
            self._call(self.sp.user_follow_artists, ids=ids)
        else:
            for playlist_id in ids:
                self._call(self.sp.current_user_follow_playlist, playlist_id)

    def create_playlist(self, name: str, description: str = "") -> str:
        result = self._call(
            self.sp.user_playlist_create,
            self.account.user_id,
            name,
            public=False,
            description=description or ""
        )
        playlist_id = str(result['id'])
        logger.info(f"Created Spotify playlist: {name} (ID: {playlist_id})")
        return playlist_id

    def _add_playlist_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        uris = [t if t.startswith('spotify:') else f"spotify:track:{t}" for t in track_ids]
        self._call(self.sp.playlist_add_items, playlist_id, uris)

    def get_playlist_tracks(self, playlist_id: str) -> List[LibraryItem]:
        tracks = []
        offset = 0
        while True:
            results = self._call(
                self.sp.playlist_items,
                playlist_id,
                limit=self.PLAYLIST_PAGE_SIZE,
                offset=offset,
                additional_types=('track',)
            )
            for entry in results.get('items') or []:
                parsed = self._parse_item(entry.get('track'), ItemType.TRACKS)
                if parsed:
                    tracks.append(parsed)

            if not results.get('next'):
                break
            offset += self.PLAYLIST_PAGE_SIZE

        logger.debug(f"Found {len(tracks)} tracks in Spotify playlist {playlist_id}")
        return tracks

    @staticmethod
    def _parse_item(raw: Optional[Dict], item_type: ItemType) -> Optional[LibraryItem]:
        # Local files and removed tracks come back with a null id
        if not raw or not raw.get('id'):
            return None

        if item_type == ItemType.PLAYLISTS:
            return LibraryItem(
                id=str(raw['id']),
                display_name=raw.get('name') or '',
                description=raw.get('description') or None,
                owner_id=owner_id_of(raw.get('owner'))
            )

        if item_type == ItemType.ARTISTS:
            return LibraryItem(id=str(raw['id']), display_name=raw.get('name') or '')

        artists = [a.get('name') for a in raw.get('artists') or [] if a.get('name')]
        album_name = None
        if item_type == ItemType.TRACKS:
            album_name = (raw.get('album') or {}).get('name')

        return LibraryItem(
            id=str(raw['id']),
            display_name=raw.get('name') or '',
            artists=artists,
            album_name=album_name
        )
