"""Transfer orchestrator: moves a library snapshot into a target account."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from tunetransfer.errors import AuthExpired, NoMatch, RateLimited, UserCancelled
from tunetransfer.matcher import Matcher
from tunetransfer.models import (
    TRANSFER_ORDER,
    ItemType,
    LibraryItem,
    OutcomeStatus,
    Provider,
    TransferOutcome,
)
from tunetransfer.playlist_transfer import PlaylistTransfer
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.report import TransferReport
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.transfer")


class TransferState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    FINALIZING = "finalizing"
    DONE = "done"
    STOPPED = "stopped"


@dataclass
class TransferOptions:
    """Run options.

    dry_run: read, search and match but never write
    fallback_to_first_result: on a rejected match use the first search result
    update_existing: add to a same-named target playlist instead of creating one
    """

    dry_run: bool = False
    fallback_to_first_result: bool = False
    update_existing: bool = True


class ProgressCallback:
    """Progress tracker pushed to an optional callback after every item."""

    # Consecutive rate-limited items before the run is flagged as throttled
    THROTTLE_STREAK = 3

    def __init__(self, callback: Callable[[Dict], None] = None):
        self.callback = callback
        self.state = TransferState.IDLE.value
        self.current_type = ""
        self.current_item = ""
        self.processed = 0
        self.total = 0
        self.added = 0
        self.skipped = 0
        self.failed = 0
        self.rate_limited = 0
        self.rate_limited_streak = 0

    def update(self, **kwargs):
        """Update progress and call callback."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
        if self.callback:
            self.callback(self.to_dict())

    def record(self, outcome: TransferOutcome, rate_limited: bool = False):
        """Count one finished item."""
        self.processed += 1
        if outcome.status == OutcomeStatus.ADDED:
            self.added += 1
        elif outcome.status == OutcomeStatus.SKIPPED_NO_MATCH:
            self.skipped += 1
        else:
            self.failed += 1

        if rate_limited:
            self.rate_limited += 1
            self.rate_limited_streak += 1
        else:
            self.rate_limited_streak = 0
        self.update()

    @property
    def throttled(self) -> bool:
        return self.rate_limited_streak >= self.THROTTLE_STREAK

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "state": self.state,
            "current_type": self.current_type,
            "current_item": self.current_item,
            "processed": self.processed,
            "total": self.total,
            "added": self.added,
            "skipped": self.skipped,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "throttled": self.throttled,
            "percent_complete": self._calculate_percent(),
        }

    def _calculate_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return min(self.processed / self.total * 100, 100.0)


class TransferService:
    """
    Transfer favorites from a source snapshot into a target account.

    Item types run in the fixed order playlists, tracks, albums, artists and
    items within a type in fetch order, one at a time. Per-item failures are
    recorded in the report and never stop the run. A run ends when the items
    are exhausted, when cancel() is honored at the next item boundary, or
    when the target credential expires (AuthExpired propagates with the
    partial report attached as ``exc.report``).

    With no source adapter (restoring an export) the snapshot ids are taken
    to be valid on the target, as in a same-provider transfer.
    """

    def __init__(
        self,
        source_adapter: Optional[CatalogAdapter],
        target_adapter: CatalogAdapter,
        matcher: Matcher = None,
        progress_callback: ProgressCallback = None,
        options: TransferOptions = None,
        source_provider: Optional[Provider] = None
    ):
        self.source_adapter = source_adapter
        self.target_adapter = target_adapter
        self.matcher = matcher or Matcher()
        self.progress = progress_callback or ProgressCallback()
        self.options = options or TransferOptions()

        if source_provider is None and source_adapter is not None:
            source_provider = source_adapter.provider
        self.source_provider = source_provider or target_adapter.provider

        self.state = TransferState.IDLE
        self.current_type: Optional[ItemType] = None
        self._cancelled = False

        self.playlists = PlaylistTransfer(
            source_adapter,
            target_adapter,
            self.resolve_target_id,
            self.options
        )

    @property
    def same_provider(self) -> bool:
        return self.source_provider == self.target_adapter.provider

    def cancel(self):
        """Request a cooperative stop before the next item."""
        self._cancelled = True
        logger.info("Transfer cancellation requested")

    def run(
        self,
        library: Dict[ItemType, List[LibraryItem]],
        item_types: Optional[Iterable[ItemType]] = None
    ) -> TransferReport:
        """
        Transfer the selected item types of a library snapshot.

        Args:
            library: Source items per type, in fetch order
            item_types: Types to transfer (default: every type in the snapshot)

        Returns:
            TransferReport in processing order

        Raises:
            AuthExpired: If a credential is rejected mid-run
        """
        if self.state not in (TransferState.IDLE, TransferState.DONE, TransferState.STOPPED):
            raise RuntimeError(f"Transfer already in progress ({self.state.value})")
        if self.state != TransferState.IDLE:
            self._cancelled = False

        self._set_state(TransferState.INITIALIZING)
        selected = set(ItemType(t) for t in item_types) if item_types is not None else set(library)
        types = [t for t in TRANSFER_ORDER if t in selected]

        report = TransferReport(
            source_provider=self.source_provider.value,
            target_provider=self.target_adapter.provider.value
        )
        report.item_types = types
        report.total_items = sum(len(library.get(t) or []) for t in types)
        self.progress.update(total=report.total_items)

        mode = "same-provider" if self.same_provider else "cross-provider"
        logger.info(
            f"Starting {mode} transfer {self.source_provider.value} → "
            f"{self.target_adapter.provider.value}: {report.total_items} items "
            f"({', '.join(t.value for t in types) or 'nothing selected'})"
        )
        if self.options.dry_run:
            logger.info("DRY RUN MODE - No changes will be made")

        try:
            for item_type in types:
                items = library.get(item_type) or []
                if not items:
                    continue
                self._run_type(item_type, items, report)
        except UserCancelled:
            report.finalize(TransferState.STOPPED.value)
            self._set_state(TransferState.STOPPED)
            logger.info(f"Transfer stopped after {report.processed}/{report.total_items} items")
            return report
        except AuthExpired as e:
            report.finalize(TransferState.STOPPED.value)
            self._set_state(TransferState.STOPPED)
            logger.error(f"Authentication expired, stopping transfer: {e}")
            e.report = report
            raise

        self._set_state(TransferState.FINALIZING)
        report.finalize(TransferState.DONE.value)
        self._log_summary(report)
        self._set_state(TransferState.DONE)
        return report

    def _run_type(self, item_type: ItemType, items: List[LibraryItem], report: TransferReport):
        self.current_type = item_type
        self._set_state(TransferState.RUNNING)
        self.progress.update(current_type=item_type.value)
        logger.info(f"Transferring {len(items)} {item_type.value}...")

        for i, item in enumerate(items, 1):
            if self._cancelled:
                raise UserCancelled(f"Stopped before {item_type.value} {i}/{len(items)}")

            self.progress.update(current_item=item.display_name)
            outcome, rate_limited = self._process_item(item_type, item)
            report.add_outcome(outcome)
            self.progress.record(outcome, rate_limited=rate_limited)
            self._log_outcome(outcome, i, len(items))

    def _process_item(self, item_type: ItemType, item: LibraryItem):
        """Attempt one item. Only AuthExpired escapes."""
        try:
            if item_type == ItemType.PLAYLISTS and not self.same_provider:
                return self.playlists.transfer(item), False

            target_id = item.id if self.same_provider else self.resolve_target_id(item, item_type)
            if not self.options.dry_run:
                self.target_adapter.add_favorite(item_type, target_id)
            return TransferOutcome(item_type, item, OutcomeStatus.ADDED, resolved_target_id=target_id), False

        except AuthExpired:
            raise
        except NoMatch as e:
            return TransferOutcome(item_type, item, OutcomeStatus.SKIPPED_NO_MATCH, error_detail=str(e)), False
        except RateLimited as e:
            return TransferOutcome(item_type, item, OutcomeStatus.FAILED, error_detail=str(e)), True
        except Exception as e:
            logger.debug(f"Error transferring {item_type.value} {item.id}: {e!r}")
            return TransferOutcome(item_type, item, OutcomeStatus.FAILED, error_detail=str(e) or repr(e)), False

    def resolve_target_id(self, item: LibraryItem, item_type: ItemType) -> str:
        """
        Find the target catalog id of a source item through search and matching.

        Raises:
            NoMatch: If no candidate clears the threshold (and fallback is off)
        """
        query = item.display_name
        if item.artists:
            query = f"{query} {item.artists[0]}"

        candidates = self.target_adapter.search(query, item_type)
        result = self.matcher.best_match(item, candidates, item_type)
        if result:
            return result.candidate.id

        if self.options.fallback_to_first_result and candidates:
            logger.debug(f"Falling back to first search result for {item.display_name}")
            return candidates[0].id

        raise NoMatch(self._no_match_detail(item, candidates))

    def _no_match_detail(self, item: LibraryItem, candidates) -> str:
        if not candidates:
            return "No match found (no search results)"

        suggestions = self.matcher.suggest(item, candidates, limit=1)
        if not suggestions:
            return "No match found"
        closest = suggestions[0]
        by = f" by {', '.join(closest['artists'])}" if closest['artists'] else ""
        return f"No match found (closest: \"{closest['name']}\"{by}, score {closest['similarity']:.0f})"

    def _set_state(self, state: TransferState):
        self.state = state
        self.progress.update(state=state.value)

    def _log_outcome(self, outcome: TransferOutcome, index: int, total: int):
        prefix = f"[{index}/{total}]"
        dry = "[DRY RUN] " if self.options.dry_run else ""
        name = outcome.source_item.display_name
        if outcome.status == OutcomeStatus.ADDED:
            logger.info(f"{prefix} ✅ {dry}Added {outcome.item_type.value[:-1]}: {name}")
        elif outcome.status == OutcomeStatus.SKIPPED_NO_MATCH:
            logger.info(f"{prefix} ⏭️ No match: {name}")
        else:
            logger.info(f"{prefix} ❌ Failed: {name} ({outcome.error_detail})")

    def _log_summary(self, report: TransferReport):
        logger.info("\n" + "="*60)
        logger.info("TRANSFER COMPLETE" + (" (DRY RUN)" if self.options.dry_run else ""))
        logger.info("="*60)
        for item_type, counts in report.counts_by_type().items():
            logger.info(
                f"{item_type}: {counts[OutcomeStatus.ADDED.value]} added, "
                f"{counts[OutcomeStatus.SKIPPED_NO_MATCH.value]} skipped, "
                f"{counts[OutcomeStatus.FAILED.value]} failed"
            )
        logger.info(f"Total: {report.added} added, {report.skipped} skipped, {report.failed} failed")
