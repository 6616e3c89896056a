"""Common surface and shared rules for provider catalog adapters."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import requests

from tunetransfer.errors import (
    AuthExpired,
    NotFoundOrForbidden,
    RateLimited,
    TransientNetwork,
)
from tunetransfer.models import AccountRef, ItemType, LibraryItem, MatchCandidate, Provider
from tunetransfer.rate_governor import RateGovernor
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.providers")


def chunked(items: List[str], size: int) -> Iterator[List[str]]:
    """Yield consecutive slices of at most ``size`` items."""
    size = max(1, size)
    for i in range(0, len(items), size):
        yield items[i:i + size]


def parse_retry_after(headers: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Read a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not headers:
        return None
    value = None
    for key in headers:
        if str(key).lower() == 'retry-after':
            value = headers[key]
            break
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def owner_id_of(owner: Optional[Mapping[str, Any]]) -> Optional[str]:
    """User id from a playlist's owner/creator object, or None when absent."""
    if not owner or owner.get('id') is None:
        return None
    return str(owner['id'])


class CatalogAdapter(ABC):
    """
    Uniform favorites/search/write surface over one provider account.

    Subclasses implement the underscored hooks. The public methods add the
    rules shared by every provider: unsupported item types list as empty,
    searches never fail on zero results, and writes are split into batches
    the provider accepts. Every network call goes through ``self.governor``.
    """

    provider: Provider = None

    DEFAULT_MIN_INTERVAL = 0.5
    SEARCH_LIMIT = 10
    FAVORITE_BATCH_SIZES: Dict[ItemType, int] = {}
    PLAYLIST_BATCH_SIZE = 100

    def __init__(
        self,
        credential: str,
        user_id: Optional[str] = None,
        governor: Optional[RateGovernor] = None,
        min_interval: Optional[float] = None
    ):
        """
        Initialize the adapter.

        Args:
            credential: Access token for the account
            user_id: Account user id; resolved by authenticate() when omitted
            governor: Shared Rate Governor; a new one is created when omitted
            min_interval: Baseline pacing override for a newly created governor
        """
        self.credential = credential
        self._account: Optional[AccountRef] = None
        if user_id:
            self._account = AccountRef(self.provider, str(user_id), credential)

        if governor is None:
            governor = RateGovernor(
                self.provider.value,
                min_interval=min_interval if min_interval is not None else self.DEFAULT_MIN_INTERVAL
            )
        self.governor = governor

    @property
    def account(self) -> AccountRef:
        if self._account is None:
            raise AuthExpired(
                "Not authenticated. Call authenticate() first.",
                provider=self.provider.value,
                status=None
            )
        return self._account

    @property
    def is_authenticated(self) -> bool:
        return self._account is not None

    def authenticate(self) -> AccountRef:
        """
        Validate the credential and resolve the account's user id.

        Raises:
            AuthExpired: If the credential is rejected
        """
        user_id = self._fetch_user_id()
        self._account = AccountRef(self.provider, str(user_id), self.credential)
        logger.info(f"✅ Authenticated with {self.provider.value} as user {user_id}")
        return self._account

    def list_favorites(self, item_type: ItemType) -> List[LibraryItem]:
        """
        List every favorited item of a type, following pagination to the end.

        A 403/404 means the account has nothing to offer for this type and
        yields an empty list. AuthExpired propagates.
        """
        try:
            items = self._list_favorites(item_type)
        except NotFoundOrForbidden as e:
            logger.warning(
                f"{self.provider.value}: {item_type.value} unavailable for this account ({e.status}), "
                f"treating as empty"
            )
            return []

        logger.info(f"Retrieved {len(items)} favorite {item_type.value} from {self.provider.value}")
        return items

    def search(self, query: str, item_type: ItemType) -> List[MatchCandidate]:
        """Search the catalog. Zero results is an empty list, never an error."""
        if not query or not query.strip():
            return []
        candidates = self._search(query.strip(), item_type) or []
        return candidates[:self.SEARCH_LIMIT]

    def add_favorite(self, item_type: ItemType, ids: Union[str, Iterable[str]]) -> None:
        """
        Favorite one id or a batch of ids. Already-favorited ids are a no-op.

        Batches are split to the provider's per-call limit for the item type.
        """
        id_list = [ids] if isinstance(ids, str) else [str(i) for i in ids]
        if not id_list:
            return

        batch_size = self.FAVORITE_BATCH_SIZES.get(item_type, 1)
        for batch in chunked(id_list, batch_size):
            self._add_favorites(item_type, batch)
            logger.debug(f"{self.provider.value}: favorited {len(batch)} {item_type.value}")

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: List[str]) -> int:
        """
        Insert tracks into a playlist in provider-sized batches.

        Returns:
            Number of track ids sent
        """
        track_ids = [str(t) for t in track_ids]
        for batch in chunked(track_ids, self.PLAYLIST_BATCH_SIZE):
            self._add_playlist_tracks(playlist_id, batch)
        return len(track_ids)

    @abstractmethod
    def create_playlist(self, name: str, description: str = "") -> str:
        """Create a playlist owned by the account and return its id."""

    @abstractmethod
    def get_playlist_tracks(self, playlist_id: str) -> List[LibraryItem]:
        """Return the ordered tracks of a playlist."""

    @abstractmethod
    def _fetch_user_id(self) -> str:
        pass

    @abstractmethod
    def _list_favorites(self, item_type: ItemType) -> List[LibraryItem]:
        pass

    @abstractmethod
    def _search(self, query: str, item_type: ItemType) -> List[MatchCandidate]:
        pass

    @abstractmethod
    def _add_favorites(self, item_type: ItemType, ids: List[str]) -> None:
        pass

    @abstractmethod
    def _add_playlist_tracks(self, playlist_id: str, track_ids: List[str]) -> None:
        pass

    def raise_for_status(
        self,
        status: Optional[int],
        message: str = "",
        headers: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Map a provider response status onto the error taxonomy.

        2xx returns quietly. An expired-token message is treated as 401
        whatever the status.
        """
        provider = self.provider.value
        text = (message or "").lower()

        if status is not None and 200 <= status < 300 and not self._is_expired_token(text):
            return

        if status == 401 or self._is_expired_token(text):
            raise AuthExpired(
                f"{provider} rejected the credential ({status}): {message}".strip(),
                provider=provider,
                status=status
            )
        if status == 429:
            raise RateLimited(
                f"{provider} rate limit hit",
                provider=provider,
                retry_after=parse_retry_after(headers)
            )
        if status in (403, 404):
            raise NotFoundOrForbidden(
                f"{provider} returned {status}: {message}".strip(),
                provider=provider,
                status=status
            )
        raise TransientNetwork(
            f"{provider} request failed ({status}): {message}".strip(),
            provider=provider,
            status=status
        )

    @staticmethod
    def _is_expired_token(text: str) -> bool:
        return 'token' in text and 'expired' in text


class HttpCatalogAdapter(CatalogAdapter):
    """
    Adapter talking to a JSON REST API through a ``requests.Session``.

    The session is the injected HTTP transport: pass one that routes
    through a forwarding proxy, or a stub in tests.
    """

    BASE_URL = ""
    TIMEOUT = 10

    def __init__(
        self,
        credential: str,
        user_id: Optional[str] = None,
        governor: Optional[RateGovernor] = None,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        super().__init__(credential, user_id=user_id, governor=governor, min_interval=min_interval)
        self._session = session or requests.Session()
        self._session.headers.update(self._default_headers())

    def _default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _send(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Issue one request and raise the mapped error for non-2xx statuses."""
        url = endpoint if endpoint.startswith("http") else f"{self.BASE_URL}/{endpoint}"
        kwargs.setdefault("timeout", self.TIMEOUT)

        try:
            response = self._session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.provider.value} API request failed for {endpoint}: {e}")
            raise TransientNetwork(
                f"{self.provider.value} API request failed: {e}",
                provider=self.provider.value
            )

        if not 200 <= response.status_code < 300:
            logger.debug(f"{self.provider.value} {method} {endpoint} -> {response.status_code}: {response.text}")
            self.raise_for_status(response.status_code, self._error_message(response), response.headers)
        return response

    def _make_request(
        self,
        endpoint: str,
        params: Dict = None,
        method: str = "GET",
        data: Dict = None,
        headers: Dict = None
    ) -> Dict:
        """
        Make a paced, authenticated request and return the decoded JSON body.

        Empty bodies (204 and friends) decode to an empty dict.
        """
        response = self.governor.call(
            self._send, method, endpoint, params=params, data=data, headers=headers
        )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or ""
        if isinstance(body, dict):
            for key in ("userMessage", "error_description", "message", "error"):
                value = body.get(key)
                if isinstance(value, dict):
                    value = value.get("message")
                if value:
                    return str(value)
        return response.text or ""
