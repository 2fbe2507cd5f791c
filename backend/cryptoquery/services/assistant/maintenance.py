"""Periodic sweeps that keep the in-memory stores bounded."""

import asyncio
import logging
from typing import Callable, List

from ... import config
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)


async def _run_periodically(name: str, interval: float, sweep: Callable[[], int]) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            removed = sweep()
            if removed:
                logger.debug(f"[Maintenance] {name}: removed {removed}")
        except Exception:
            logger.exception(f"[Maintenance] {name} sweep failed")


def start_maintenance(
    orchestrator: Orchestrator,
    cache_interval: float = config.CACHE_CLEANUP_INTERVAL_SECONDS,
    rate_limit_interval: float = config.RATE_LIMIT_CLEANUP_INTERVAL_SECONDS,
    context_interval: float = config.CONTEXT_CLEANUP_INTERVAL_SECONDS,
) -> List[asyncio.Task]:
    """Start the cleanup loops on the running event loop."""
    return [
        asyncio.create_task(_run_periodically("cache", cache_interval, orchestrator.cache.cleanup)),
        asyncio.create_task(_run_periodically("rate_limit", rate_limit_interval, orchestrator.rate_limiter.cleanup)),
        asyncio.create_task(
            _run_periodically("contexts", context_interval, orchestrator.conversations.cleanup_expired_contexts)
        ),
    ]


async def stop_maintenance(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
