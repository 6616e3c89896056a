"""Unit tests for the async transfer wrapper."""

import asyncio

import pytest
from tunetransfer.async_transfer import AsyncTransferService
from tunetransfer.errors import AuthExpired
from tunetransfer.models import ItemType, Provider
from tunetransfer.transfer_service import ProgressCallback, TransferState


class TestAsyncTransferService:
    """Test cases for AsyncTransferService."""

    def test_run(self, make_adapter, make_item):
        snapshots = []
        target = make_adapter(Provider.QOBUZ)
        runner = AsyncTransferService(
            make_adapter(Provider.QOBUZ), target, progress_callback=ProgressCallback(snapshots.append)
        )

        report = asyncio.run(runner.run({ItemType.TRACKS: [make_item('t1', 'Song')]}))

        assert report.added == 1
        assert runner.state == TransferState.DONE
        assert snapshots[-1]['state'] == 'done'
        assert target.favorited_ids(ItemType.TRACKS) == ['t1']

    def test_run_twice(self, make_adapter, make_item):
        target = make_adapter(Provider.QOBUZ)
        runner = AsyncTransferService(make_adapter(Provider.QOBUZ), target)

        first = asyncio.run(runner.run({ItemType.TRACKS: [make_item('t1', 'Song')]}))
        second = asyncio.run(runner.run({ItemType.ALBUMS: [make_item('a1', 'LP')]}))

        assert (first.added, second.added) == (1, 1)
        assert runner.state == TransferState.DONE
        assert target.add_calls == [(ItemType.TRACKS, ['t1']), (ItemType.ALBUMS, ['a1'])]

    def test_restore_without_source(self, make_adapter, make_item):
        target = make_adapter(Provider.SPOTIFY)
        runner = AsyncTransferService(None, target)

        report = asyncio.run(runner.run({ItemType.ALBUMS: [make_item('a1', 'LP')]}, ['albums']))

        assert report.source_provider == 'spotify'
        assert target.add_calls == [(ItemType.ALBUMS, ['a1'])]

    def test_cancel_before_run(self, make_adapter, make_item):
        runner = AsyncTransferService(make_adapter(), make_adapter())
        runner.cancel()

        report = asyncio.run(runner.run({ItemType.TRACKS: [make_item('t1', 'Song')]}))

        assert report.outcomes == []
        assert runner.state == TransferState.STOPPED

    def test_auth_expired_propagates(self, make_adapter, make_item):
        target = make_adapter(errors={'t1': AuthExpired("expired", provider='tidal')})
        runner = AsyncTransferService(make_adapter(), target)

        with pytest.raises(AuthExpired) as exc_info:
            asyncio.run(runner.run({ItemType.TRACKS: [make_item('t1', 'Song')]}))

        assert exc_info.value.report.state == 'stopped'
