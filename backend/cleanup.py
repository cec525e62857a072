"""Cleanup: reclaims expired objects.

The web app runs a Reaper that sweeps every CLEANUP_INTERVAL_SECONDS.
For cron-style deployments run a single sweep standalone: python cleanup.py
"""

import asyncio
import logging

from api.objects.dto.object import SweepResult
from api.objects.services.registry import ObjectRegistry

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodically asks the registry to sweep expired objects.

    Sweeps immediately when started, then once per interval. A tick that
    arrives while the previous sweep is still running is skipped, so slow
    sweeps never pile up.
    """

    def __init__(self, registry: ObjectRegistry, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._loop_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Reaper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._sweep_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._sweep_task = None
        logger.info("Reaper stopped")

    def trigger(self) -> bool:
        """Start a sweep unless one is already in flight. Returns whether one started."""
        if self._sweep_task is not None and not self._sweep_task.done():
            logger.warning("Previous sweep still running; skipping this tick")
            return False
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep())
        return True

    async def _run(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self.interval_seconds)

    async def _sweep(self) -> SweepResult | None:
        try:
            result = await self.registry.sweep()
        except Exception:
            logger.exception("Reaper sweep failed")
            return None
        if result.error_count:
            logger.warning(
                "Reaper sweep: %d deleted, %d errors", result.deleted_count, result.error_count
            )
        else:
            logger.debug("Reaper sweep: %d deleted", result.deleted_count)
        return result


async def run_cleanup(registry: ObjectRegistry | None = None) -> SweepResult:
    """Run one sweep and wait for it to finish."""
    if registry is None:
        from api.objects.services.registry_provider import build_registry

        registry = build_registry()
    return await registry.sweep()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(run_cleanup())
    print(f"Cleaned up {result.deleted_count} objects ({result.error_count} errors)")
