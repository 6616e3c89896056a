"""Credentials parser for reading account settings from a credentials.md file."""

import os
import re
from typing import Dict, Iterable, Optional


class CredentialsError(Exception):
    """Exception raised when credentials cannot be parsed."""
    pass


TRANSFER_KEYS = [
    'SOURCE_PROVIDER',
    'SOURCE_TOKEN',
    'TARGET_PROVIDER',
    'TARGET_TOKEN',
]

OPTIONAL_KEYS = [
    'SOURCE_USER_ID',
    'TARGET_USER_ID',
    'TIDAL_COUNTRY_CODE',
    'QOBUZ_APP_ID',
    'TIDAL_MIN_INTERVAL',
    'QOBUZ_MIN_INTERVAL',
    'SPOTIFY_MIN_INTERVAL',
]


def parse_credentials(
    credentials_path: str = "credentials.md",
    required_keys: Optional[Iterable[str]] = None,
    use_env: bool = True
) -> Dict[str, str]:
    """
    Parse credentials from a credentials.md file.

    The file holds ``KEY=value`` lines; markdown headings and prose around
    them are ignored. Environment variables with the same names override
    values from the file. When the file is missing, the environment alone
    must supply every required key.

    Args:
        credentials_path: Path to the credentials file (default: credentials.md)
        required_keys: Keys that must be present (default: TRANSFER_KEYS)
        use_env: Whether environment variables override the file

    Returns:
        Dictionary of credentials

    Raises:
        CredentialsError: If file not found or required credentials are missing
    """
    required = list(required_keys) if required_keys is not None else TRANSFER_KEYS
    credentials = {}

    if os.path.exists(credentials_path):
        with open(credentials_path, 'r', encoding='utf-8') as f:
            content = f.read()

        pattern = r'^\s*([A-Z][A-Z0-9_]*)=(.+)$'
        for key, value in re.findall(pattern, content, flags=re.MULTILINE):
            credentials[key] = value.strip()
    elif not use_env:
        raise CredentialsError(f"Credentials file not found: {credentials_path}")

    if use_env:
        for key in required + OPTIONAL_KEYS:
            if os.environ.get(key):
                credentials[key] = os.environ[key].strip()

    if not credentials and not os.path.exists(credentials_path):
        raise CredentialsError(f"Credentials file not found: {credentials_path}")

    missing_keys = [key for key in required if not credentials.get(key)]
    if missing_keys:
        raise CredentialsError(
            f"Missing required credentials: {', '.join(missing_keys)}"
        )

    return credentials


def min_interval_for(credentials: Dict[str, str], provider: str) -> Optional[float]:
    """Return the configured minimum request interval for a provider, if any."""
    raw = credentials.get(f"{provider.upper()}_MIN_INTERVAL")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise CredentialsError(f"Invalid {provider.upper()}_MIN_INTERVAL: {raw}")
