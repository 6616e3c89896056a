"""Unit tests for transfer reports."""

import json
from datetime import datetime

import pytest
from tunetransfer import __version__
from tunetransfer.models import ItemType, LibraryItem, OutcomeStatus, TransferOutcome
from tunetransfer.report import TransferReport


def outcome(item_type, item_id, name, status, error=None, target=None):
    return TransferOutcome(
        item_type=item_type,
        source_item=LibraryItem(id=item_id, display_name=name),
        status=status,
        error_detail=error,
        resolved_target_id=target
    )


@pytest.fixture
def report():
    """Report with one outcome of each status."""
    report = TransferReport('tidal', 'qobuz')
    report.item_types = [ItemType.TRACKS, ItemType.ALBUMS]
    report.total_items = 3
    report.add_outcome(outcome(ItemType.TRACKS, 't1', 'Song', OutcomeStatus.ADDED, target='q1'))
    report.add_outcome(outcome(ItemType.TRACKS, 't2', 'Rare', OutcomeStatus.SKIPPED_NO_MATCH, 'No match found (no search results)'))
    report.add_outcome(outcome(ItemType.ALBUMS, 'a1', 'LP', OutcomeStatus.FAILED, 'qobuz request failed (500)'))
    return report


class TestTransferReport:
    """Test cases for TransferReport."""

    def test_init(self):
        report = TransferReport()
        assert report.outcomes == []
        assert report.end_time is None
        assert report.processed == 0

    def test_counts(self, report):
        assert report.added == 1
        assert report.skipped == 1
        assert report.failed == 1
        assert report.processed == 3

    def test_failures_keep_order(self, report):
        assert [o.source_item.id for o in report.failures] == ['t2', 'a1']

    def test_counts_by_type(self, report):
        counts = report.counts_by_type()
        assert counts['tracks'] == {'added': 1, 'skipped_no_match': 1, 'failed': 0}
        assert counts['albums']['failed'] == 1

    def test_finalize(self, report):
        report.finalize('done')
        assert report.state == 'done'
        assert report.end_time is not None

    def test_to_dict(self, report):
        report.finalize('stopped')
        data = report.to_dict()

        assert data['version'] == __version__
        assert data['source_provider'] == 'tidal'
        assert data['state'] == 'stopped'
        assert data['item_types'] == ['tracks', 'albums']
        assert data['added'] == 1
        assert data['skipped_no_match'] == 1
        assert data['failed'] == 1
        assert data['duration_seconds'] >= 0
        assert [f['id'] for f in data['failures']] == ['t2', 'a1']

    def test_save_to_file(self, report, tmp_path):
        filepath = tmp_path / "report.json"
        report.save_to_file(str(filepath))

        with open(filepath, encoding='utf-8') as f:
            data = json.load(f)
        assert data['total_items'] == 3


class TestFormatFailures:
    """Test cases for the failure text block."""

    def test_header_and_lines(self, report):
        text = report.format_failures('transfer', timestamp=datetime(2024, 5, 1, 12, 30, 0))

        assert text.splitlines() == [
            f"tunetransfer {__version__}",
            "Timestamp: 2024-05-01T12:30:00",
            "Operation: transfer",
            "Failures: 2",
            "",
            "- [tracks] Rare (id:t2): No match found (no search results)",
            "- [albums] LP (id:a1): qobuz request failed (500)",
        ]

    def test_no_failures(self):
        report = TransferReport()
        text = report.format_failures('restore')

        assert "Operation: restore" in text
        assert "Failures: 0" in text
        assert "- [" not in text
