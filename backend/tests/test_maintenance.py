"""
Tests for the background cleanup sweeps.

Usage:
    pytest backend/tests/test_maintenance.py -v
"""

import asyncio

from cryptoquery.schemas.conversation import QueryAnalysis
from cryptoquery.services.assistant.maintenance import start_maintenance, stop_maintenance

from conftest import make_orchestrator


def test_sweeps_remove_expired_state(clock, price_fetcher):
    orch = make_orchestrator(clock, price_fetcher)
    orch.cache.set("price:bitcoin", {"price:bitcoin": 1.0})
    orch.rate_limiter.check("ip")
    orch.conversations.update_context("s1", QueryAnalysis(query="q"), "r")
    clock.advance(3600)

    async def run_sweeps():
        tasks = start_maintenance(orch, cache_interval=0.01, rate_limit_interval=0.01, context_interval=0.01)
        await asyncio.sleep(0.1)
        await stop_maintenance(tasks)
        return tasks

    tasks = asyncio.run(run_sweeps())

    assert len(orch.cache) == 0
    assert len(orch.rate_limiter) == 0
    assert len(orch.conversations) == 0
    assert all(task.done() for task in tasks)


def test_failing_sweep_keeps_running(clock, price_fetcher):
    orch = make_orchestrator(clock, price_fetcher)
    calls = []

    def broken_cleanup():
        calls.append(1)
        raise RuntimeError("sweep bug")

    orch.cache.cleanup = broken_cleanup

    async def run_sweeps():
        tasks = start_maintenance(orch, cache_interval=0.01, rate_limit_interval=10, context_interval=10)
        await asyncio.sleep(0.1)
        await stop_maintenance(tasks)

    asyncio.run(run_sweeps())

    assert len(calls) > 1
