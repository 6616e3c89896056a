"""Unit tests for the shared catalog adapter rules."""

import pytest
from tunetransfer.errors import AuthExpired, NotFoundOrForbidden, RateLimited, TransientNetwork
from tunetransfer.models import ItemType, Provider
from tunetransfer.providers import ADAPTERS, create_adapter
from tunetransfer.providers.base import chunked, parse_retry_after
from tunetransfer.providers.qobuz_client import QobuzClient
from tunetransfer.providers.tidal_client import TidalClient


class TestHelpers:
    """Test cases for module helpers."""

    def test_chunked(self):
        assert list(chunked(['a', 'b', 'c', 'd', 'e'], 2)) == [['a', 'b'], ['c', 'd'], ['e']]
        assert list(chunked([], 3)) == []

    def test_parse_retry_after(self):
        assert parse_retry_after({'Retry-After': '2'}) == 2.0
        assert parse_retry_after({'retry-after': '1.5'}) == 1.5
        assert parse_retry_after({'Retry-After': 'Wed, 21 Oct 2015 07:28:00 GMT'}) is None
        assert parse_retry_after({}) is None
        assert parse_retry_after(None) is None


class TestRaiseForStatus:
    """Test cases for status to error mapping."""

    @pytest.fixture
    def adapter(self, make_adapter):
        return make_adapter(Provider.QOBUZ)

    def test_success_is_quiet(self, adapter):
        adapter.raise_for_status(200)
        adapter.raise_for_status(204, "")

    def test_401(self, adapter):
        with pytest.raises(AuthExpired) as exc_info:
            adapter.raise_for_status(401, "Invalid token")
        assert exc_info.value.status == 401
        assert exc_info.value.provider == 'qobuz'

    def test_expired_token_message(self, adapter):
        with pytest.raises(AuthExpired):
            adapter.raise_for_status(400, "The access token has expired")

    def test_429_carries_retry_after(self, adapter):
        with pytest.raises(RateLimited) as exc_info:
            adapter.raise_for_status(429, "", {'Retry-After': '3'})
        assert exc_info.value.retry_after == 3.0
        assert exc_info.value.status == 429

    @pytest.mark.parametrize("status", [403, 404])
    def test_not_found_or_forbidden(self, adapter, status):
        with pytest.raises(NotFoundOrForbidden) as exc_info:
            adapter.raise_for_status(status, "nope")
        assert exc_info.value.status == status

    @pytest.mark.parametrize("status", [400, 500, 503, None])
    def test_everything_else_is_transient(self, adapter, status):
        with pytest.raises(TransientNetwork):
            adapter.raise_for_status(status, "bad")


class TestSharedRules:
    """Test cases for behavior every adapter inherits."""

    def test_unauthenticated_account_raises(self, make_adapter):
        adapter = make_adapter(user_id=None)
        assert not adapter.is_authenticated
        with pytest.raises(AuthExpired, match="Not authenticated"):
            adapter.account

    def test_authenticate_sets_account(self, make_adapter):
        adapter = make_adapter(Provider.SPOTIFY, user_id=None)
        account = adapter.authenticate()
        assert account.provider == Provider.SPOTIFY
        assert account.user_id == 'user-1'
        assert adapter.is_authenticated

    def test_forbidden_type_lists_empty(self, make_adapter):
        adapter = make_adapter()

        def forbidden(item_type):
            raise NotFoundOrForbidden("no", status=403)

        adapter._list_favorites = forbidden
        assert adapter.list_favorites(ItemType.ARTISTS) == []

    def test_auth_failure_while_listing_propagates(self, make_adapter):
        adapter = make_adapter()

        def expired(item_type):
            raise AuthExpired("expired")

        adapter._list_favorites = expired
        with pytest.raises(AuthExpired):
            adapter.list_favorites(ItemType.TRACKS)

    def test_blank_query_skips_search(self, make_adapter):
        adapter = make_adapter()
        assert adapter.search("   ", ItemType.TRACKS) == []
        assert adapter.searches == []

    def test_search_bounded(self, make_adapter, make_candidate):
        adapter = make_adapter(catalog={'q': [make_candidate(str(i), 'x') for i in range(25)]})
        assert len(adapter.search('q', ItemType.TRACKS)) == adapter.SEARCH_LIMIT

    def test_add_favorite_batches(self, make_adapter):
        adapter = make_adapter()
        adapter.FAVORITE_BATCH_SIZES = {ItemType.TRACKS: 2}

        adapter.add_favorite(ItemType.TRACKS, ['1', '2', '3'])

        assert adapter.add_calls == [(ItemType.TRACKS, ['1', '2']), (ItemType.TRACKS, ['3'])]

    def test_add_favorite_single_id(self, make_adapter):
        adapter = make_adapter()
        adapter.add_favorite(ItemType.ALBUMS, 'abc')
        assert adapter.add_calls == [(ItemType.ALBUMS, ['abc'])]

    def test_add_favorite_twice_is_noop(self, make_adapter):
        adapter = make_adapter()
        adapter.add_favorite(ItemType.TRACKS, 't1')
        adapter.add_favorite(ItemType.TRACKS, 't1')
        assert adapter.favorited_ids(ItemType.TRACKS) == ['t1']


class TestFactory:
    """Test cases for adapter construction."""

    def test_every_provider_has_an_adapter(self):
        assert set(ADAPTERS) == set(Provider)

    def test_create_by_name(self):
        adapter = create_adapter('TIDAL', 'token', user_id='7', country_code='SE')
        assert isinstance(adapter, TidalClient)
        assert adapter.country_code == 'SE'
        assert adapter.account.user_id == '7'

    def test_none_options_dropped(self):
        adapter = create_adapter(Provider.QOBUZ, 'token', app_id=None)
        assert isinstance(adapter, QobuzClient)
        assert adapter.app_id == QobuzClient.WEB_PLAYER_APP_ID

    def test_min_interval_override(self):
        adapter = create_adapter(Provider.QOBUZ, 'token', min_interval=1.25)
        assert adapter.governor.min_interval == 1.25

    def test_default_pacing_per_provider(self):
        assert create_adapter(Provider.TIDAL, 't').governor.min_interval == 0.2
        assert create_adapter(Provider.QOBUZ, 't').governor.min_interval == 0.3

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_adapter('deezer', 'token')
