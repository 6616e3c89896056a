"""Shared fixtures: an in-memory catalog adapter and library item builders."""

import pytest

from tunetransfer.models import ItemType, LibraryItem, MatchCandidate, Provider
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.rate_governor import RateGovernor


class FakeAdapter(CatalogAdapter):
    """
    Catalog adapter backed by dicts. Records every call it receives.

    favorites:       {ItemType: [LibraryItem]}
    catalog:         {query: [MatchCandidate]} answered by search()
    playlist_tracks: {playlist_id: [LibraryItem]}
    errors:          {id: exception} raised when that id is favorited
    """

    def __init__(
        self,
        provider=Provider.TIDAL,
        favorites=None,
        catalog=None,
        playlist_tracks=None,
        errors=None,
        user_id="user-1",
        governor=None
    ):
        self.provider = Provider(provider)
        super().__init__(
            "fake-token",
            user_id=user_id,
            governor=governor or RateGovernor(self.provider.value, min_interval=0, sleep=lambda s: None)
        )
        self.favorites = {t: list(items) for t, items in (favorites or {}).items()}
        self.catalog = dict(catalog or {})
        self.playlist_tracks = {k: list(v) for k, v in (playlist_tracks or {}).items()}
        self.errors = dict(errors or {})

        self.add_calls = []
        self.searches = []
        self.created_playlists = []
        self.playlist_inserts = []

    def favorited_ids(self, item_type):
        return [item.id for item in self.favorites.get(item_type, [])]

    def _fetch_user_id(self):
        return "user-1"

    def _list_favorites(self, item_type):
        return list(self.favorites.get(item_type, []))

    def _search(self, query, item_type):
        self.searches.append((query, item_type))
        return list(self.catalog.get(query, []))

    def _add_favorites(self, item_type, ids):
        self.add_calls.append((item_type, list(ids)))
        for item_id in ids:
            if item_id in self.errors:
                raise self.errors[item_id]
            if item_id not in self.favorited_ids(item_type):
                self.favorites.setdefault(item_type, []).append(LibraryItem(id=item_id, display_name=item_id))

    def create_playlist(self, name, description=""):
        playlist_id = f"pl-{len(self.created_playlists) + 1}"
        self.created_playlists.append((playlist_id, name, description))
        self.favorites.setdefault(ItemType.PLAYLISTS, []).append(
            LibraryItem(id=playlist_id, display_name=name, owner_id=self.account.user_id)
        )
        self.playlist_tracks[playlist_id] = []
        return playlist_id

    def _add_playlist_tracks(self, playlist_id, track_ids):
        self.playlist_inserts.append((playlist_id, list(track_ids)))
        self.playlist_tracks.setdefault(playlist_id, []).extend(
            LibraryItem(id=t, display_name=t) for t in track_ids
        )

    def get_playlist_tracks(self, playlist_id):
        return list(self.playlist_tracks.get(playlist_id, []))


def item(item_id, name, artists=None, album=None, owner=None):
    return LibraryItem(
        id=item_id, display_name=name, artists=list(artists or []), album_name=album, owner_id=owner
    )


def candidate(item_id, name, artists=None, album=None):
    return MatchCandidate(id=item_id, display_name=name, artists=list(artists or []), album_name=album)


@pytest.fixture
def make_adapter():
    """Factory for FakeAdapter instances."""
    return FakeAdapter


@pytest.fixture
def make_item():
    return item


@pytest.fixture
def make_candidate():
    return candidate
