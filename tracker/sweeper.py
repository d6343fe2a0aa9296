"""Background task that evicts peers which stopped heartbeating."""

import asyncio
import time
from typing import Callable, Optional

from common.logging_config import get_logger
from tracker.registry import RegistryStore

logger = get_logger(__name__)


class LivenessSweeper:
    """
    Periodically sweeps the registry for peers past their TTL.
    """

    def __init__(
        self,
        registry: RegistryStore,
        ttl_seconds: float,
        interval_seconds: float,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            registry: Registry to sweep
            ttl_seconds: Seconds without heartbeat before a peer is evicted
            interval_seconds: Time between sweeps
            clock: Source of epoch timestamps
        """
        self.registry = registry
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._running:
            logger.warning("Liveness sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Started liveness sweeper (ttl: {self.ttl_seconds}s, interval: {self.interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the background sweep task and wait for it to exit."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Stopped liveness sweeper")

    def sweep_once(self) -> int:
        """Run a single sweep against the registry."""
        return self.registry.sweep(self._clock(), self.ttl_seconds)

    async def _run(self) -> None:
        """Main loop for the sweeper."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                self.sweep_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in liveness sweep: {e}", exc_info=True)
