"""Async wrapper for the transfer service with progress callbacks."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

from tunetransfer.library import LibrarySnapshot
from tunetransfer.models import ItemType
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.report import TransferReport
from tunetransfer.transfer_service import ProgressCallback, TransferOptions, TransferService


class AsyncTransferService:
    """
    Runs the blocking orchestrator on a single worker thread.

    Each run gets its own one-worker executor, so items stay serialized
    exactly as in a direct run and the wrapper can be run again. The event
    loop stays free to serve progress polls and stop requests. Pass no
    source adapter to restore an export snapshot.
    """

    def __init__(
        self,
        source_adapter: Optional[CatalogAdapter],
        target_adapter: CatalogAdapter,
        progress_callback: ProgressCallback = None,
        options: TransferOptions = None
    ):
        self.progress = progress_callback or ProgressCallback()
        self.service = TransferService(
            source_adapter,
            target_adapter,
            progress_callback=self.progress,
            options=options
        )

    @property
    def state(self):
        return self.service.state

    def cancel(self):
        """Cancel the running transfer at the next item boundary."""
        self.service.cancel()

    async def run(
        self,
        library: LibrarySnapshot,
        item_types: Optional[Iterable[ItemType]] = None
    ) -> TransferReport:
        """Transfer a snapshot. Same contract as TransferService.run()."""
        if item_types is not None:
            item_types = list(item_types)
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return await loop.run_in_executor(executor, self.service.run, library, item_types)
        finally:
            executor.shutdown(wait=False)
