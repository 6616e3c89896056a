"""Catalog adapters for the supported streaming providers."""

from typing import Optional, Union

import requests

from tunetransfer.models import Provider
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.providers.qobuz_client import QobuzClient
from tunetransfer.providers.spotify_client import SpotifyClient
from tunetransfer.providers.tidal_client import TidalClient
from tunetransfer.rate_governor import RateGovernor


ADAPTERS = {
    Provider.TIDAL: TidalClient,
    Provider.QOBUZ: QobuzClient,
    Provider.SPOTIFY: SpotifyClient,
}


def create_adapter(
    provider: Union[Provider, str],
    credential: str,
    user_id: Optional[str] = None,
    session: Optional[requests.Session] = None,
    governor: Optional[RateGovernor] = None,
    min_interval: Optional[float] = None,
    **options
) -> CatalogAdapter:
    """
    Build the adapter for a provider.

    Extra options are passed to the adapter (``country_code`` for Tidal,
    ``app_id`` for Qobuz).

    Raises:
        ValueError: If the provider is not supported
    """
    provider = Provider(provider.lower() if isinstance(provider, str) else provider)
    adapter_cls = ADAPTERS[provider]

    options = {k: v for k, v in options.items() if v is not None}
    return adapter_cls(
        credential,
        user_id=user_id,
        governor=governor,
        min_interval=min_interval,
        session=session,
        **options
    )


def connect(
    provider: Union[Provider, str],
    credential: str,
    user_id: Optional[str] = None,
    **kwargs
) -> CatalogAdapter:
    """Create an adapter and authenticate it unless the user id is already known."""
    adapter = create_adapter(provider, credential, user_id=user_id, **kwargs)
    if not adapter.is_authenticated:
        adapter.authenticate()
    return adapter


__all__ = [
    'ADAPTERS',
    'CatalogAdapter',
    'QobuzClient',
    'SpotifyClient',
    'TidalClient',
    'connect',
    'create_adapter',
]
