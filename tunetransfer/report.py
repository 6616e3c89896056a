"""Transfer report: per-item outcomes, counts and the failure text block."""

import json
from datetime import datetime
from typing import Dict, List, Optional

from tunetransfer import __version__
from tunetransfer.models import ItemType, OutcomeStatus, TransferOutcome


class TransferReport:
    """Report of a transfer run, in processing order."""

    def __init__(self, source_provider: Optional[str] = None, target_provider: Optional[str] = None):
        """Initialize empty transfer report."""
        self.source_provider = source_provider
        self.target_provider = target_provider
        self.start_time = datetime.now()
        self.end_time = None
        self.state = None
        self.item_types: List[ItemType] = []
        self.total_items = 0
        self.outcomes: List[TransferOutcome] = []

    def add_outcome(self, outcome: TransferOutcome):
        """Record the outcome of one attempted item."""
        self.outcomes.append(outcome)

    def finalize(self, state: str):
        """Mark the run as finished (done or stopped)."""
        self.end_time = datetime.now()
        self.state = state

    @property
    def added(self) -> int:
        return self._count(OutcomeStatus.ADDED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED_NO_MATCH)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def failures(self) -> List[TransferOutcome]:
        """The Failure Report: every non-added outcome, in processing order."""
        return [o for o in self.outcomes if not o.succeeded]

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def counts_by_type(self) -> Dict[str, Dict[str, int]]:
        counts = {}
        for outcome in self.outcomes:
            per_type = counts.setdefault(outcome.item_type.value, {s.value: 0 for s in OutcomeStatus})
            per_type[outcome.status.value] += 1
        return counts

    def to_dict(self) -> Dict:
        """Convert report to dictionary."""
        duration = None
        if self.end_time:
            duration = (self.end_time - self.start_time).total_seconds()

        return {
            'version': __version__,
            'source_provider': self.source_provider,
            'target_provider': self.target_provider,
            'state': self.state,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': duration,
            'item_types': [t.value for t in self.item_types],
            'total_items': self.total_items,
            'processed': self.processed,
            'added': self.added,
            'skipped_no_match': self.skipped,
            'failed': self.failed,
            'by_type': self.counts_by_type(),
            'failures': [o.to_dict() for o in self.failures],
        }

    def save_to_file(self, filepath: str):
        """Save report to JSON file."""
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def format_failures(self, operation: str = "transfer", timestamp: Optional[datetime] = None) -> str:
        """
        Render the Failure Report as a text block for copy/export.

        Header lines carry version, timestamp, operation and failure count,
        followed by one ``- [itemType] name (id:ID): error`` line per failure.
        """
        timestamp = timestamp or self.end_time or datetime.now()
        failures = self.failures

        lines = [
            f"tunetransfer {__version__}",
            f"Timestamp: {timestamp.isoformat(timespec='seconds')}",
            f"Operation: {operation}",
            f"Failures: {len(failures)}",
            "",
        ]
        for outcome in failures:
            lines.append(
                f"- [{outcome.item_type.value}] {outcome.source_item.display_name} "
                f"(id:{outcome.source_item.id}): {outcome.error_detail or outcome.status.value}"
            )
        return "\n".join(lines)
