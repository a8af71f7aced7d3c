"""Unit tests for the expiration sweeper."""

import asyncio

import pytest

from sessionvault.infra.session.errors import PersistenceError
from sessionvault.infra.session.sweeper import ExpirationSweeper, SweeperState
from tests.unit.infra.session_test_utils import FakeClock, InMemoryRecordStore


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


class CountingRecordStore(InMemoryRecordStore):
    """Record store counting scans, optionally blocking or failing them."""

    def __init__(self) -> None:
        super().__init__()
        self.scans = 0
        self.fail_scans = 0
        self.block_on_scan: int | None = None
        self.scan_entered = asyncio.Event()
        self.release_scan = asyncio.Event()

    async def scan(self) -> list[tuple[str, int]]:
        self.scans += 1
        if self.scans == self.block_on_scan:
            self.scan_entered.set()
            await self.release_scan.wait()
        if self.fail_scans:
            self.fail_scans -= 1
            raise PersistenceError("connection lost")
        return await super().scan()


class TestSweep:
    """Tests for a single sweep pass."""

    @pytest.mark.asyncio
    async def test_deletes_only_records_past_expiry(self) -> None:
        clock = FakeClock(now=1000)
        records = InMemoryRecordStore()
        expired = await records.insert(999, "a")
        boundary = await records.insert(1000, "b")
        live = await records.insert(2000, "c")

        deleted = await ExpirationSweeper(records, clock=clock).sweep()

        assert deleted == 1
        assert expired not in records.rows
        assert boundary in records.rows
        assert live in records.rows

    @pytest.mark.asyncio
    async def test_failing_delete_aborts_sweep(self) -> None:
        clock = FakeClock(now=1000)
        records = InMemoryRecordStore()
        for _ in range(3):
            await records.insert(10, "x")

        calls = 0
        original_delete = records.delete

        async def flaky_delete(record_id: str) -> bool:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise PersistenceError("deadlock")
            return await original_delete(record_id)

        records.delete = flaky_delete  # type: ignore[method-assign]

        with pytest.raises(PersistenceError, match="deadlock"):
            await ExpirationSweeper(records, clock=clock).sweep()

        assert calls == 2
        assert len(records.rows) == 2

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError, match="interval_seconds"):
            ExpirationSweeper(InMemoryRecordStore(), interval_seconds=0)


class TestLifecycle:
    """Tests for start/stop and the periodic loop."""

    @pytest.mark.asyncio
    async def test_start_sweeps_once_before_returning(self) -> None:
        clock = FakeClock(now=1000)
        records = CountingRecordStore()
        await records.insert(10, "stale")
        sweeper = ExpirationSweeper(records, interval_seconds=3600, clock=clock)

        await sweeper.start()
        try:
            assert records.scans == 1
            assert records.rows == {}
            assert sweeper.state is SweeperState.RUNNING
        finally:
            await sweeper.stop()

        assert sweeper.state is SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_start_survives_failing_initial_sweep(self) -> None:
        records = CountingRecordStore()
        records.fail_scans = 1
        sweeper = ExpirationSweeper(records, interval_seconds=3600)

        await sweeper.start()
        try:
            assert sweeper.running
        finally:
            await sweeper.stop()

    @pytest.mark.asyncio
    async def test_loop_sweeps_on_every_interval(self) -> None:
        records = CountingRecordStore()
        sweeper = ExpirationSweeper(records, interval_seconds=0.01)

        await sweeper.start()
        try:
            await _wait_until(lambda: records.scans >= 4)
        finally:
            await sweeper.stop()

    @pytest.mark.asyncio
    async def test_failed_sweeps_do_not_end_the_loop(self) -> None:
        records = CountingRecordStore()
        records.fail_scans = 3
        sweeper = ExpirationSweeper(records, interval_seconds=0.01)

        await sweeper.start()
        try:
            await _wait_until(lambda: records.scans >= 6)
            assert sweeper.running
        finally:
            await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_sweep(self) -> None:
        records = CountingRecordStore()
        records.block_on_scan = 2
        sweeper = ExpirationSweeper(records, interval_seconds=0.01)
        await sweeper.start()

        await asyncio.wait_for(records.scan_entered.wait(), timeout=2.0)
        stopping = asyncio.create_task(sweeper.stop())
        await asyncio.sleep(0.05)

        assert not stopping.done()
        assert sweeper.state is SweeperState.STOP_REQUESTED

        records.release_scan.set()
        await asyncio.wait_for(stopping, timeout=2.0)
        scans_at_stop = records.scans
        await asyncio.sleep(0.05)

        assert sweeper.state is SweeperState.STOPPED
        assert records.scans == scans_at_stop == 2

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        sweeper = ExpirationSweeper(InMemoryRecordStore(), interval_seconds=3600)

        await sweeper.stop()
        await sweeper.start()
        await sweeper.stop()
        await sweeper.stop()

        assert sweeper.state is SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice_raises(self) -> None:
        sweeper = ExpirationSweeper(InMemoryRecordStore(), interval_seconds=3600)
        await sweeper.start()
        try:
            with pytest.raises(RuntimeError, match="already started"):
                await sweeper.start()
        finally:
            await sweeper.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self) -> None:
        records = CountingRecordStore()
        sweeper = ExpirationSweeper(records, interval_seconds=3600)

        await sweeper.start()
        await sweeper.stop()
        await sweeper.start()
        await sweeper.stop()

        assert records.scans == 2

    @pytest.mark.asyncio
    async def test_stop_during_initial_sweep_prevents_further_sweeps(self) -> None:
        records = CountingRecordStore()
        records.block_on_scan = 1
        sweeper = ExpirationSweeper(records, interval_seconds=0.01)

        starting = asyncio.create_task(sweeper.start())
        await asyncio.wait_for(records.scan_entered.wait(), timeout=2.0)
        assert sweeper.state is SweeperState.RUNNING

        stopping = asyncio.create_task(sweeper.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()

        records.release_scan.set()
        await asyncio.wait_for(asyncio.gather(starting, stopping), timeout=2.0)
        await asyncio.sleep(0.1)

        assert records.scans == 1
        assert sweeper.state is SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_cancelled_stop_lets_in_flight_sweep_finish(self) -> None:
        clock = FakeClock(now=1000)
        records = CountingRecordStore()
        records.block_on_scan = 2
        sweeper = ExpirationSweeper(records, interval_seconds=0.01, clock=clock)
        await sweeper.start()

        await asyncio.wait_for(records.scan_entered.wait(), timeout=2.0)
        stale = await records.insert(10, "stale")
        stopping = asyncio.create_task(sweeper.stop())
        await asyncio.sleep(0.02)
        stopping.cancel()
        with pytest.raises(asyncio.CancelledError):
            await stopping

        assert sweeper.state is SweeperState.STOP_REQUESTED

        records.release_scan.set()
        await _wait_until(lambda: sweeper.state is SweeperState.STOPPED)

        assert stale not in records.rows
        assert records.scans == 2
        await sweeper.stop()
        assert sweeper.state is SweeperState.STOPPED
