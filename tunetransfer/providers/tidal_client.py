"""Tidal catalog adapter over the v1 REST API."""

from typing import Dict, List, Optional

import requests

from tunetransfer.errors import TransientNetwork
from tunetransfer.models import ItemType, LibraryItem, MatchCandidate, Provider
from tunetransfer.providers.base import HttpCatalogAdapter, owner_id_of
from tunetransfer.rate_governor import RateGovernor
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.providers.tidal")


class TidalClient(HttpCatalogAdapter):
    """
    Client for a Tidal account using a bearer access token.

    Favorites live under ``/users/{id}/favorites/{type}``; playlists are
    read from ``playlistsAndFavoritePlaylists`` so both owned and followed
    playlists are transferred.
    """

    provider = Provider.TIDAL
    BASE_URL = "https://api.tidal.com/v1"

    DEFAULT_MIN_INTERVAL = 0.2
    PAGE_SIZE = 100
    PLAYLIST_PAGE_SIZE = 50
    FAVORITE_BATCH_SIZES = {
        ItemType.TRACKS: 50,
        ItemType.ALBUMS: 50,
        ItemType.ARTISTS: 50,
        ItemType.PLAYLISTS: 50,
    }
    PLAYLIST_BATCH_SIZE = 50

    # Form field carrying the ids when adding favorites
    FAVORITE_FIELDS = {
        ItemType.TRACKS: 'trackIds',
        ItemType.ALBUMS: 'albumIds',
        ItemType.ARTISTS: 'artistIds',
        ItemType.PLAYLISTS: 'uuids',
    }

    def __init__(
        self,
        access_token: str,
        user_id: Optional[str] = None,
        country_code: str = "US",
        governor: Optional[RateGovernor] = None,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize Tidal client.

        Args:
            access_token: OAuth access token
            user_id: Tidal user id (resolved through /sessions when omitted)
            country_code: Catalog country used for search and playlist reads
            governor: Shared Rate Governor
            min_interval: Pacing override when no governor is given
            session: HTTP transport
        """
        self.country_code = country_code
        super().__init__(
            access_token,
            user_id=user_id,
            governor=governor,
            min_interval=min_interval,
            session=session
        )

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.credential}",
        }

    def _fetch_user_id(self) -> str:
        data = self._make_request('sessions')
        if not isinstance(data, dict) or data.get('userId') is None:
            raise TransientNetwork("Tidal sessions returned no user id", provider=self.provider.value)
        if data.get('countryCode'):
            self.country_code = data['countryCode']
        return str(data['userId'])

    def _list_favorites(self, item_type: ItemType) -> List[LibraryItem]:
        user_id = self.account.user_id

        if item_type == ItemType.PLAYLISTS:
            entries = self._paginate(
                f'users/{user_id}/playlistsAndFavoritePlaylists',
                self.PLAYLIST_PAGE_SIZE
            )
            items = []
            seen = set()
            for entry in entries:
                playlist = entry.get('playlist') or entry.get('item') or entry
                parsed = self._parse_item(playlist, ItemType.PLAYLISTS)
                if parsed and parsed.id not in seen:
                    seen.add(parsed.id)
                    items.append(parsed)
            return items

        entries = self._paginate(f'users/{user_id}/favorites/{item_type.value}', self.PAGE_SIZE)
        items = []
        for entry in entries:
            parsed = self._parse_item(entry.get('item') or entry, item_type)
            if parsed:
                items.append(parsed)
        return items

    def _paginate(self, endpoint: str, limit: int) -> List[Dict]:
        """Collect items page by page until a short page or the reported total."""
        collected = []
        offset = 0

        while True:
            data = self._make_request(endpoint, {
                'offset': offset,
                'limit': limit,
                'countryCode': self.country_code,
            })
            page = data.get('items') or []
            collected.extend(page)

            total = data.get('totalNumberOfItems')
            if len(page) < limit or (total is not None and len(collected) >= total):
                break
            offset += limit

        return collected

    def _search(self, query: str, item_type: ItemType) -> List[MatchCandidate]:
        data = self._make_request(f'search/{item_type.value}', {
            'query': query,
            'limit': self.SEARCH_LIMIT,
            'countryCode': self.country_code,
        })

        candidates = []
        for raw in data.get('items') or []:
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
        self._make_request(
            f'users/{self.account.user_id}/favorites/{item_type.value}',
            params={'countryCode': self.country_code},
            method='POST',
            data={self.FAVORITE_FIELDS[item_type]: ','.join(ids), 'onArtifactNotFound': 'FAIL'}
        )

    def create_playlist(self, name: str, description: str = "") -> str:
        data = self._make_request(
            f'users/{self.account.user_id}/playlists',
            params={'countryCode': self.country_code},
            method='POST',
            data={'title': name, 'description': description or ''}
        )
        if not isinstance(data, dict) or not data.get('uuid'):
            raise TransientNetwork("Tidal playlist creation returned no uuid", provider=self.provider.value)
        playlist_id = str(data['uuid'])
        logger.info(f"Created Tidal playlist: {name} (ID: {playlist_id})")
        return playlist_id

    def _playlist_etag(self, playlist_id: str) -> Optional[str]:
        response = self.governor.call(
            self._send, 'GET', f'playlists/{playlist_id}',
            params={'countryCode': self.country_code}
        )
        return response.headers.get('ETag')

    def _add_playlist_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        # Every modification changes the playlist ETag, so fetch it per batch.
        etag = self._playlist_etag(playlist_id)
        headers = {'If-None-Match': etag} if etag else None
        self._make_request(
            f'playlists/{playlist_id}/items',
            params={'countryCode': self.country_code},
            method='POST',
            data={
                'trackIds': ','.join(track_ids),
                'onDupes': 'SKIP',
                'onArtifactNotFound': 'SKIP',
            },
            headers=headers
        )

    def get_playlist_tracks(self, playlist_id: str) -> List[LibraryItem]:
        entries = self._paginate(f'playlists/{playlist_id}/tracks', self.PAGE_SIZE)
        tracks = []
        for entry in entries:
            parsed = self._parse_item(entry.get('item') or entry, ItemType.TRACKS)
            if parsed:
                tracks.append(parsed)
        logger.debug(f"Found {len(tracks)} tracks in Tidal playlist {playlist_id}")
        return tracks

    @staticmethod
    def _parse_item(raw: Dict, item_type: ItemType) -> Optional[LibraryItem]:
        """Normalize a Tidal track/album/artist/playlist object."""
        if not raw:
            return None

        if item_type == ItemType.PLAYLISTS:
            playlist_id = raw.get('uuid') or raw.get('id')
            if not playlist_id:
                return None
            return LibraryItem(
                id=str(playlist_id),
                display_name=raw.get('title') or raw.get('name') or '',
                description=raw.get('description') or None,
                owner_id=owner_id_of(raw.get('creator'))
            )

        if raw.get('id') is None:
            return None

        if item_type == ItemType.ARTISTS:
            return LibraryItem(id=str(raw['id']), display_name=raw.get('name') or '')

        artists = [a.get('name') for a in raw.get('artists') or [] if a.get('name')]
        if not artists and (raw.get('artist') or {}).get('name'):
            artists = [raw['artist']['name']]

        album_name = None
        if item_type == ItemType.TRACKS:
            album_name = (raw.get('album') or {}).get('title')

        title = raw.get('title') or ''
        if raw.get('version'):
            title = f"{title} ({raw['version']})"

        return LibraryItem(
            id=str(raw['id']),
            display_name=title,
            artists=artists,
            album_name=album_name
        )

