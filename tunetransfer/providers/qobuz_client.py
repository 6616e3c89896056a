"""
Qobuz catalog adapter using token-based authentication.

The user auth token comes from a logged-in web player session, which also
works for accounts created through Google login.
"""

from typing import Dict, List, Optional

import requests

from tunetransfer.errors import NotFoundOrForbidden, TransientNetwork
from tunetransfer.models import ItemType, LibraryItem, MatchCandidate, Provider
from tunetransfer.providers.base import HttpCatalogAdapter, owner_id_of
from tunetransfer.rate_governor import RateGovernor
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.providers.qobuz")


class QobuzClient(HttpCatalogAdapter):
    """Client for interacting with the Qobuz API using a session token."""

    provider = Provider.QOBUZ
    BASE_URL = "https://www.qobuz.com/api.json/0.2"
    WEB_PLAYER_APP_ID = "798273057"

    DEFAULT_MIN_INTERVAL = 0.3
    PAGE_SIZE = 500
    PLAYLIST_TRACKS_PAGE_SIZE = 500
    FAVORITE_BATCH_SIZES = {
        ItemType.TRACKS: 50,
        ItemType.ALBUMS: 50,
        ItemType.ARTISTS: 50,
    }
    PLAYLIST_BATCH_SIZE = 50

    FAVORITE_FIELDS = {
        ItemType.TRACKS: 'track_ids',
        ItemType.ALBUMS: 'album_ids',
        ItemType.ARTISTS: 'artist_ids',
    }

    # Single-type search endpoints, used when catalog/search is unavailable
    LEGACY_SEARCH = {
        ItemType.TRACKS: 'track/search',
        ItemType.ALBUMS: 'album/search',
        ItemType.ARTISTS: 'artist/search',
        ItemType.PLAYLISTS: 'playlist/search',
    }

    def __init__(
        self,
        user_auth_token: str,
        user_id: Optional[str] = None,
        app_id: Optional[str] = None,
        governor: Optional[RateGovernor] = None,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize Qobuz client with session token.

        Args:
            user_auth_token: Session token (user_auth_token cookie or X-User-Auth-Token)
            user_id: Qobuz user id (resolved through user/get when omitted)
            app_id: Application id sent as X-App-Id
            governor: Shared Rate Governor
            min_interval: Pacing override when no governor is given
            session: HTTP transport
        """
        self.app_id = app_id or self.WEB_PLAYER_APP_ID
        super().__init__(
            user_auth_token,
            user_id=user_id,
            governor=governor,
            min_interval=min_interval,
            session=session
        )

    @property
    def user_auth_token(self) -> str:
        return self.credential

    def _default_headers(self) -> Dict[str, str]:
        return {
            "X-App-Id": self.app_id,
            "X-User-Auth-Token": self.credential,
            "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Origin": "https://play.qobuz.com",
            "Referer": "https://play.qobuz.com/",
        }

    def _fetch_user_id(self) -> str:
        data = self._make_request('user/get')
        user = data.get('user') or data
        if user.get('id') is None:
            raise TransientNetwork("Qobuz user/get returned no user id", provider=self.provider.value)
        return str(user['id'])

    def _list_favorites(self, item_type: ItemType) -> List[LibraryItem]:
        if item_type == ItemType.PLAYLISTS:
            raw_items = self._paginate(
                'playlist/getUserPlaylists',
                {'user_id': self.account.user_id},
                'playlists',
                self.PAGE_SIZE
            )
        else:
            raw_items = self._paginate(
                'favorite/getUserFavorites',
                {'user_id': self.account.user_id, 'type': item_type.value},
                item_type.value,
                self.PAGE_SIZE
            )

        items = []
        for raw in raw_items:
            parsed = self._parse_item(raw, item_type)
            if parsed:
                items.append(parsed)
        return items

    def _paginate(self, endpoint: str, params: Dict, key: str, limit: int) -> List[Dict]:
        """Follow offset pagination until a page comes back shorter than ``limit``."""
        collected = []
        offset = 0

        while True:
            data = self._make_request(endpoint, {**params, 'limit': limit, 'offset': offset})
            section = data.get(key) or {}
            page = section.get('items') or []
            collected.extend(page)

            total = section.get('total')
            if len(page) < limit or (total is not None and len(collected) >= total):
                break
            offset += limit

        return collected

    def _search(self, query: str, item_type: ItemType) -> List[MatchCandidate]:
        try:
            data = self._make_request('catalog/search', {
                'query': query,
                'type': item_type.value,
                'limit': self.SEARCH_LIMIT,
            })
        except NotFoundOrForbidden:
            logger.debug(f"catalog/search unavailable, falling back to {self.LEGACY_SEARCH[item_type]}")
            data = self._make_request(self.LEGACY_SEARCH[item_type], {
                'query': query,
                'limit': self.SEARCH_LIMIT,
            })

        section = data.get(item_type.value) or {}
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
        if item_type == ItemType.PLAYLISTS:
            for playlist_id in ids:
                self._make_request('playlist/subscribe', method='POST', data={'playlist_id': playlist_id})
            return

        self._make_request(
            'favorite/create',
            method='POST',
            data={self.FAVORITE_FIELDS[item_type]: ','.join(ids)}
        )

    def create_playlist(self, name: str, description: str = "") -> str:
        """
        Create a new private playlist.

        Uses form data instead of query params to handle special characters.
        """
        data = {
            'name': name,
            'is_public': 'false',
            'is_collaborative': 'false'
        }
        if description:
            data['description'] = description

        result = self._make_request('playlist/create', method='POST', data=data)
        if not isinstance(result, dict) or result.get('id') is None:
            raise TransientNetwork("Qobuz playlist/create returned no id", provider=self.provider.value)
        playlist_id = str(result['id'])

        logger.info(f"Created Qobuz playlist: {name} (ID: {playlist_id})")
        return playlist_id

    def _add_playlist_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        self._make_request(
            'playlist/addTracks',
            method='POST',
            data={
                'playlist_id': playlist_id,
                'track_ids': ','.join(track_ids),
                'no_duplicate': 'true'
            }
        )
        logger.debug(f"Added {len(track_ids)} tracks to Qobuz playlist {playlist_id}")

    def get_playlist_tracks(self, playlist_id: str) -> List[LibraryItem]:
        raw_items = self._paginate(
            'playlist/get',
            {'playlist_id': playlist_id, 'extra': 'tracks'},
            'tracks',
            self.PLAYLIST_TRACKS_PAGE_SIZE
        )
        tracks = [t for t in (self._parse_item(raw, ItemType.TRACKS) for raw in raw_items) if t]
        logger.debug(f"Found {len(tracks)} tracks in Qobuz playlist {playlist_id}")
        return tracks

    @staticmethod
    def _parse_item(raw: Dict, item_type: ItemType) -> Optional[LibraryItem]:
        """Normalize a Qobuz track/album/artist/playlist object."""
        if not raw or raw.get('id') is None:
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

        if item_type == ItemType.ALBUMS:
            artist = (raw.get('artist') or {}).get('name')
            return LibraryItem(
                id=str(raw['id']),
                display_name=raw.get('title') or '',
                artists=[artist] if artist else []
            )

        album = raw.get('album') or {}
        performer = (raw.get('performer') or {}).get('name')
        album_artist = (album.get('artist') or {}).get('name')
        artists = [a for a in (performer, album_artist) if a]
        if len(artists) == 2 and artists[0] == artists[1]:
            artists = artists[:1]

        title = raw.get('title') or ''
        if raw.get('version'):
            title = f"{title} ({raw['version']})"

        return LibraryItem(
            id=str(raw['id']),
            display_name=title,
            artists=artists,
            album_name=album.get('title')
        )
