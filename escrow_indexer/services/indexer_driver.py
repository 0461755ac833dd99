"""
Indexer Driver.

Composes the pipeline and owns every long-lived handle:
- push listener: new heads from the WebSocket subscription
- poller: APScheduler interval job reading eth_blockNumber
- scan coordinator: the single task that scans and moves the cursor
- in-process dramatiq worker applying queued events
- health check server

Shutdown stops intake, cancels the tasks and releases the queue,
store and RPC handles. In-flight jobs are not drained; the recovery
sweep re-sends them on the next start.
"""

import asyncio
import contextlib
import signal
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import dramatiq
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from escrow_indexer.config.constants import HEALTH_CHECK_HOST, WORKER_STOP_TIMEOUT_MS
from escrow_indexer.config.database import create_engine, create_session_maker
from escrow_indexer.config.settings import Settings
from escrow_indexer.exceptions import TransientChainError
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.repositories.scan_gap_repository import ScanGapRepository
from escrow_indexer.services.blockchain import ChainClient, HeadSubscriber
from escrow_indexer.services.event_classifier import EventRegistry
from escrow_indexer.services.event_dispatcher import EventDispatcher
from escrow_indexer.services.range_scanner import RangeScanner
from escrow_indexer.services.scan_coordinator import ScanCoordinator
from jobs import health
from jobs.tasks.escrow_events import process_escrow_event


class IndexerDriver:
    """Process-level composition of the indexer."""

    def __init__(
        self,
        settings: Settings,
        *,
        engine: AsyncEngine | None = None,
        chain: ChainClient | None = None,
        subscriber: HeadSubscriber | None = None,
        broker: dramatiq.Broker | None = None,
        send: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        """
        Initialize driver.

        Handles not passed in are created from settings.

        Args:
            settings: Application settings
            engine: Database engine
            chain: Chain client
            subscriber: New head subscriber
            broker: Dramatiq broker
            send: Queue send function
        """
        self.settings = settings
        self.engine = engine or create_engine(settings.database_url)
        self.session_maker = create_session_maker(self.engine)
        self.chain = chain or ChainClient.from_url(
            settings.rpc_url, request_timeout=settings.rpc_timeout_seconds
        )
        self.subscriber = subscriber or HeadSubscriber(settings.ws_url)
        self.broker = broker or process_escrow_event.broker

        self.dispatcher = EventDispatcher(
            self.session_maker, send or process_escrow_event.send
        )
        self.scanner = RangeScanner(
            self.chain,
            self.session_maker,
            EventRegistry(),
            dispatch=self.dispatcher.dispatch,
            seed_addresses=settings.get_seed_escrow_addresses(),
        )
        self.coordinator = ScanCoordinator(
            self.scanner,
            self.session_maker,
            start_block=settings.start_block,
            confirmations=settings.confirmations,
            chunk_size=settings.scan_chunk_size,
            max_block_failures=settings.scan_max_block_failures,
        )

        self.scheduler = AsyncIOScheduler()
        self.worker: dramatiq.Worker | None = None
        self._tasks: list[asyncio.Task] = []
        self._health_runner = None
        self._running = False

    async def start(self) -> None:
        """Start all components."""
        if self._running:
            return
        self._running = True

        await self.coordinator.load_cursor()
        await self.dispatcher.recover_pending()

        if self.settings.run_workers:
            self.worker = dramatiq.Worker(
                self.broker, worker_threads=self.settings.worker_threads
            )
            self.worker.start()
            logger.info(f"[Driver] Worker started with {self.settings.worker_threads} threads")

        self._tasks.append(
            asyncio.create_task(self.coordinator.run(), name="scan-coordinator")
        )
        self._tasks.append(
            asyncio.create_task(self._listen_heads(), name="head-listener")
        )

        # First poll runs immediately to catch up from the stored cursor
        self.scheduler.add_job(
            self.poll_head,
            "interval",
            seconds=self.settings.poll_interval_seconds,
            id="poll_head",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(UTC),
        )
        self.scheduler.start()

        if self.settings.health_check_port:
            health.set_scheduler(self.scheduler)
            health.set_status_provider(self.status)
            self._health_runner = await health.start_health_server(
                HEALTH_CHECK_HOST, self.settings.health_check_port
            )

        logger.info(
            f"[Driver] Indexer started: cursor={self.coordinator.cursor}, "
            f"poll every {self.settings.poll_interval_seconds}s"
        )

    async def poll_head(self) -> None:
        """Read the chain head and request a scan up to it."""
        try:
            head = await self.chain.get_block_number()
        except TransientChainError as e:
            logger.warning(f"[Poller] Could not read head: {e}")
            return
        self.coordinator.request_scan(head)

    async def _listen_heads(self) -> None:
        async for head in self.subscriber.heads():
            logger.debug(f"[Heads] New head {head}")
            self.coordinator.request_scan(head)

    async def status(self) -> dict[str, Any]:
        """
        Snapshot of indexer state for the health endpoint.

        Returns:
            Cursor, last seen head, subscription state, job counts and
            number of skipped blocks
        """
        async with self.session_maker() as session:
            job_counts = await QueueJobRepository(session).count_by_status()
            scan_gaps = await ScanGapRepository(session).count()

        return {
            "cursor": self.coordinator.cursor,
            "last_head": self.coordinator.last_head,
            "pending_scan_requests": self.coordinator.pending_requests,
            "subscriber_connected": self.subscriber.connected,
            "jobs": job_counts,
            "scan_gaps": scan_gaps,
        }

    async def stop(self) -> None:
        """Stop intake and release every handle."""
        if not self._running:
            return
        self._running = False
        logger.info("[Driver] Shutting down...")

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        if self.worker is not None:
            self.worker.stop(timeout=WORKER_STOP_TIMEOUT_MS)
            self.worker = None

        self.broker.close()

        if self._health_runner is not None:
            await health.stop_health_server(self._health_runner)
            self._health_runner = None

        await self.engine.dispose()
        self.chain.close()
        logger.info("[Driver] Shutdown complete")

    async def run_forever(self) -> None:
        """Run until SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _on_stop() -> None:
            logger.info("[Driver] Termination signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_stop)

        try:
            await self.start()
            await stop_event.wait()
        finally:
            await self.stop()
