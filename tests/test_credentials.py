"""Unit tests for credentials parser."""

import pytest
from tunetransfer.utils.credentials import (
    OPTIONAL_KEYS,
    TRANSFER_KEYS,
    CredentialsError,
    min_interval_for,
    parse_credentials,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real environment variables out of the parser."""
    for key in TRANSFER_KEYS + OPTIONAL_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def credentials_file(tmp_path):
    def write(content):
        path = tmp_path / "credentials.md"
        path.write_text(content, encoding='utf-8')
        return str(path)
    return write


class TestCredentialsParser:
    """Test cases for credentials parser."""

    def test_parse_credentials_success(self, credentials_file):
        """Test successful parsing of credentials file."""
        path = credentials_file("""
## Source
SOURCE_PROVIDER=tidal
SOURCE_TOKEN=tidal_token_123

## Target
TARGET_PROVIDER=qobuz
TARGET_TOKEN=qobuz_token_abc
QOBUZ_APP_ID=798273057
""")
        creds = parse_credentials(path)

        assert creds['SOURCE_PROVIDER'] == 'tidal'
        assert creds['SOURCE_TOKEN'] == 'tidal_token_123'
        assert creds['TARGET_PROVIDER'] == 'qobuz'
        assert creds['TARGET_TOKEN'] == 'qobuz_token_abc'
        assert creds['QOBUZ_APP_ID'] == '798273057'

    def test_parse_credentials_file_not_found(self):
        """Test error when credentials file doesn't exist."""
        with pytest.raises(CredentialsError, match="Credentials file not found"):
            parse_credentials('nonexistent_file.md')

    def test_file_required_without_env(self):
        with pytest.raises(CredentialsError, match="Credentials file not found"):
            parse_credentials('nonexistent_file.md', use_env=False)

    def test_parse_credentials_missing_keys(self, credentials_file):
        """Test error when required credentials are missing."""
        path = credentials_file("SOURCE_PROVIDER=tidal\nSOURCE_TOKEN=abc\n")

        with pytest.raises(CredentialsError, match="TARGET_PROVIDER, TARGET_TOKEN"):
            parse_credentials(path)

    def test_values_stripped_and_prose_ignored(self, credentials_file):
        path = credentials_file("""
Paste the tokens below. Lowercase=ignored
SOURCE_PROVIDER=spotify
SOURCE_TOKEN=token with spaces
TARGET_PROVIDER=tidal
TARGET_TOKEN=xyz
""")
        creds = parse_credentials(path)

        assert creds['SOURCE_PROVIDER'] == 'spotify'
        assert creds['SOURCE_TOKEN'] == 'token with spaces'
        assert 'Lowercase' not in creds

    def test_custom_required_keys(self, credentials_file):
        path = credentials_file("SOURCE_PROVIDER=tidal\nSOURCE_TOKEN=abc\n")
        creds = parse_credentials(path, required_keys=['SOURCE_PROVIDER', 'SOURCE_TOKEN'])
        assert creds['SOURCE_TOKEN'] == 'abc'


class TestEnvironmentOverrides:
    """Test cases for environment variables."""

    def test_env_overrides_file(self, credentials_file, monkeypatch):
        path = credentials_file(
            "SOURCE_PROVIDER=tidal\nSOURCE_TOKEN=old\nTARGET_PROVIDER=qobuz\nTARGET_TOKEN=t\n"
        )
        monkeypatch.setenv('SOURCE_TOKEN', 'fresh')

        assert parse_credentials(path)['SOURCE_TOKEN'] == 'fresh'

    def test_env_alone_is_enough(self, monkeypatch):
        for key, value in [('SOURCE_PROVIDER', 'tidal'), ('SOURCE_TOKEN', 'a'),
                           ('TARGET_PROVIDER', 'spotify'), ('TARGET_TOKEN', 'b'),
                           ('SPOTIFY_MIN_INTERVAL', '1.5')]:
            monkeypatch.setenv(key, value)

        creds = parse_credentials('nonexistent_file.md')

        assert creds['TARGET_PROVIDER'] == 'spotify'
        assert creds['SPOTIFY_MIN_INTERVAL'] == '1.5'

    def test_env_ignored_when_disabled(self, credentials_file, monkeypatch):
        path = credentials_file(
            "SOURCE_PROVIDER=tidal\nSOURCE_TOKEN=old\nTARGET_PROVIDER=qobuz\nTARGET_TOKEN=t\n"
        )
        monkeypatch.setenv('SOURCE_TOKEN', 'fresh')

        assert parse_credentials(path, use_env=False)['SOURCE_TOKEN'] == 'old'


class TestMinInterval:
    """Test cases for pacing overrides."""

    def test_configured(self):
        assert min_interval_for({'QOBUZ_MIN_INTERVAL': '0.75'}, 'qobuz') == 0.75

    def test_absent(self):
        assert min_interval_for({}, 'tidal') is None

    def test_invalid(self):
        with pytest.raises(CredentialsError, match="TIDAL_MIN_INTERVAL"):
            min_interval_for({'TIDAL_MIN_INTERVAL': 'fast'}, 'tidal')
