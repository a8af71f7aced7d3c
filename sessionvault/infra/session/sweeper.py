"""Background reclamation of expired session records.

The sweeper runs one full sweep when started, then one sweep per interval
until stopped. Stopping is a two-phase handshake: ``stop()`` signals the
loop and then waits for the loop task to finish, so a sweep that is in
flight always completes and no sweep runs after ``stop()`` returns.

Example:
    sweeper = ExpirationSweeper(records, interval_seconds=86400)
    await sweeper.start()  # sweeps once before returning
    ...
    await sweeper.stop()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum

from sessionvault.infra.observability.metrics import record_sweep
from sessionvault.infra.session.record_store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 24 * 60 * 60


class SweeperState(str, Enum):
    """Lifecycle states of the expiration sweeper."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"


class ExpirationSweeper:
    """Periodically delete records whose expiry has passed.

    Sweeps scan the whole table without batching or pagination, which
    bounds the table size this store is suited for.
    """

    def __init__(
        self,
        records: RecordStore,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize sweeper.

        Args:
            records: Record store to sweep
            interval_seconds: Delay between sweeps
            clock: Time source returning epoch seconds
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.records = records
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self.state = SweeperState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is SweeperState.RUNNING

    async def sweep(self) -> int:
        """Delete every record with ``now > expires_at``.

        The first failing delete aborts the sweep; remaining expired records
        are picked up by the next sweep.

        Returns:
            Number of records deleted

        Raises:
            PersistenceError: If the scan or a delete fails
        """
        now = int(self._clock())
        started = time.perf_counter()
        deleted = 0

        try:
            for record_id, expires_at in await self.records.scan():
                if now > expires_at:
                    await self.records.delete(record_id)
                    deleted += 1
        except Exception:
            record_sweep(time.perf_counter() - started, deleted, success=False)
            raise

        record_sweep(time.perf_counter() - started, deleted, success=True)
        logger.info("Expired sessions swept", extra={"deleted_count": deleted})
        return deleted

    async def _sweep_logged(self) -> None:
        try:
            await self.sweep()
        except Exception:
            logger.exception("Expired session sweep failed")

    async def start(self) -> None:
        """Start the periodic loop and wait for its first sweep.

        The first sweep runs inside the loop task, so a ``stop()`` issued while
        it is in flight waits for it and prevents any further sweep.

        Raises:
            RuntimeError: If the sweeper is already started
        """
        if self.state is not SweeperState.STOPPED:
            raise RuntimeError("Sweeper already started")

        stop_event = asyncio.Event()
        first_sweep_done = asyncio.Event()
        self._stop_event = stop_event
        self.state = SweeperState.RUNNING
        task = asyncio.create_task(
            self._loop(stop_event, first_sweep_done), name="session-sweeper"
        )
        task.add_done_callback(self._loop_finished)
        self._task = task

        logger.info(
            "Session sweeper started",
            extra={"interval_seconds": self.interval_seconds},
        )
        await first_sweep_done.wait()

    async def _loop(self, stop_event: asyncio.Event, first_sweep_done: asyncio.Event) -> None:
        try:
            await self._sweep_logged()
        finally:
            first_sweep_done.set()

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self._sweep_logged()

    def _loop_finished(self, task: asyncio.Task[None]) -> None:
        if self._task is not task:
            return
        self._task = None
        self._stop_event = None
        self.state = SweeperState.STOPPED
        logger.info("Session sweeper stopped")

    async def stop(self) -> None:
        """Request the loop to stop and wait until it has exited.

        A sweep in progress is allowed to finish, even when the caller is
        cancelled while waiting; the sweeper reaches ``STOPPED`` once the loop
        exits. Stopping a stopped sweeper is a no-op.
        """
        task = self._task
        if task is None or self._stop_event is None:
            return

        self.state = SweeperState.STOP_REQUESTED
        self._stop_event.set()
        await asyncio.shield(task)
        self._loop_finished(task)
