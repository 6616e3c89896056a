"""Tests for the transfer command line."""

import json
import logging

import pytest
import transfer
from tunetransfer.errors import AuthExpired
from tunetransfer.models import ItemType, Provider
from tunetransfer.utils.credentials import OPTIONAL_KEYS, TRANSFER_KEYS


CREDENTIALS = """
## Source
SOURCE_PROVIDER=tidal
SOURCE_TOKEN=tidal-token

## Target
TARGET_PROVIDER=Qobuz
TARGET_TOKEN=qobuz-token
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run inside a temp dir with a credentials file and no env overrides."""
    for key in TRANSFER_KEYS + OPTIONAL_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "credentials.md").write_text(CREDENTIALS, encoding='utf-8')
    yield tmp_path

    package_logger = logging.getLogger("tunetransfer")
    for handler in package_logger.handlers[:]:
        if isinstance(handler, logging.FileHandler):
            package_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def adapters(make_adapter, make_item, make_candidate, monkeypatch):
    """Patch provider connection to hand out in-memory adapters."""
    adapters = {
        Provider.TIDAL: make_adapter(Provider.TIDAL, favorites={
            ItemType.TRACKS: [make_item('t1', 'Song', ['Band'])],
        }),
        Provider.QOBUZ: make_adapter(Provider.QOBUZ, catalog={
            'Song Band': [make_candidate('q1', 'Song', ['Band'])],
        }),
    }
    connected = []

    def fake_connect(provider, credential, user_id=None, **options):
        connected.append((provider, credential, options))
        return adapters[provider]

    monkeypatch.setattr(transfer, "connect", fake_connect)
    adapters['connected'] = connected
    return adapters


def run_cli(*argv):
    return transfer.run(transfer.build_parser().parse_args(list(argv)))


class TestParser:
    """Test cases for argument parsing."""

    def test_defaults(self):
        args = transfer.build_parser().parse_args([])
        assert args.types is None
        assert args.dry_run is False
        assert args.credentials == 'credentials.md'

    def test_types(self):
        args = transfer.build_parser().parse_args(['--types', 'tracks', 'albums'])
        assert args.types == ['tracks', 'albums']

    def test_export_and_restore_exclusive(self):
        with pytest.raises(SystemExit):
            transfer.build_parser().parse_args(['--export', 'a.json', '--restore', 'b.json'])

    def test_unknown_type(self):
        with pytest.raises(SystemExit):
            transfer.build_parser().parse_args(['--types', 'podcasts'])


class TestRun:
    """Test cases for CLI runs."""

    def test_transfer_success(self, workdir, adapters):
        assert run_cli('--log-file', 'run.log') == 0

        assert adapters[Provider.QOBUZ].favorited_ids(ItemType.TRACKS) == ['q1']
        assert [p for p, _, _ in adapters['connected']] == [Provider.TIDAL, Provider.QOBUZ]
        assert adapters['connected'][1][2]['app_id'] is None
        assert list(workdir.glob('transfer_report_*.json'))

    def test_skips_only_exit_zero(self, workdir, adapters, make_item):
        adapters[Provider.TIDAL].favorites[ItemType.ALBUMS] = [make_item('a1', 'Nowhere')]
        assert run_cli('--log-file', 'run.log') == 0

    def test_failures_exit_one(self, workdir, adapters):
        adapters[Provider.QOBUZ].errors['q1'] = RuntimeError("write refused")
        assert run_cli('--log-file', 'run.log') == 1

    def test_dry_run(self, workdir, adapters):
        assert run_cli('--dry-run', '--log-file', 'run.log') == 0
        assert adapters[Provider.QOBUZ].add_calls == []

    def test_auth_expired_saves_partial_report(self, workdir, adapters):
        adapters[Provider.QOBUZ].errors['q1'] = AuthExpired("expired", provider='qobuz')

        assert run_cli('--log-file', 'run.log') == 1

        reports = list(workdir.glob('transfer_report_*.json'))
        assert len(reports) == 1
        assert json.loads(reports[0].read_text(encoding='utf-8'))['state'] == 'stopped'

    def test_missing_credentials(self, workdir, adapters):
        (workdir / "credentials.md").write_text("SOURCE_PROVIDER=tidal\n", encoding='utf-8')
        assert run_cli('--log-file', 'run.log') == 1
        assert adapters['connected'] == []

    def test_export(self, workdir, adapters):
        assert run_cli('--export', 'backup/library.json', '--log-file', 'run.log') == 0

        export = json.loads((workdir / 'backup' / 'library.json').read_text(encoding='utf-8'))
        assert export['provider'] == 'tidal'
        assert export['tracks'] == [{'id': 't1', 'name': 'Song'}]
        assert [p for p, _, _ in adapters['connected']] == [Provider.TIDAL]

    def test_restore(self, workdir, adapters):
        (workdir / 'backup.json').write_text(
            json.dumps({'provider': 'qobuz', 'tracks': [{'id': 'q7', 'name': 'Seven'}]}),
            encoding='utf-8'
        )

        assert run_cli('--restore', 'backup.json', '--log-file', 'run.log') == 0
        assert adapters[Provider.QOBUZ].favorited_ids(ItemType.TRACKS) == ['q7']

    def test_restore_wrong_provider(self, workdir, adapters):
        (workdir / 'backup.json').write_text(json.dumps({'provider': 'spotify'}), encoding='utf-8')
        assert run_cli('--restore', 'backup.json', '--log-file', 'run.log') == 1

    def test_main_exits_with_code(self, workdir, adapters):
        with pytest.raises(SystemExit) as exc_info:
            transfer.main(['--log-file', 'run.log'])
        assert exc_info.value.code == 0
