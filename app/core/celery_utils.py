"""
Bridge between synchronous Celery task bodies and the async service layer.

The prefork worker keeps one event loop per process; the async database
engine's pooled connections are bound to it, so the loop is reused across
tasks and never closed here.
"""

import asyncio
from typing import Any, Awaitable


def _worker_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


def run_async_task(coro: Awaitable[Any]) -> Any:
    """
    Run a coroutine to completion on the worker's persistent event loop.

    Usage:
        @celery_app.task(name="app.tasks.households.recalculate_household_locations")
        def recalculate_household_locations():
            return run_async_task(HouseholdLearner().recalculate_all())
    """
    return _worker_loop().run_until_complete(coro)
