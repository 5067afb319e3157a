"""
Async/sync compatibility helpers
"""

import asyncio
import threading
from typing import Any, Awaitable, TypeVar
from functools import wraps

T = TypeVar('T')


async def wait_with_default(awaitable: Awaitable[T], timeout: float, default: T) -> T:
    """
    Await with an upper bound, returning a default instead of raising

    Used where availability matters more than the awaited answer: if the
    awaitable does not resolve within `timeout` seconds it is cancelled and
    `default` is returned. Exceptions raised by the awaitable propagate.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        return default


def sync_wrapper(coro: Awaitable[T]) -> T:
    """
    Run async function in sync context
    Handles both cases: existing event loop and no event loop
    """
    try:
        asyncio.get_running_loop()
        # We're in an async context, need to run in a new thread
        return _run_in_thread(coro)
    except RuntimeError:
        # No running event loop, safe to use asyncio.run
        return asyncio.run(coro)


def _run_in_thread(coro: Awaitable[T]) -> T:
    """Run coroutine in a separate thread with its own event loop"""
    result = {"value": None, "exception": None}

    def thread_target():
        new_loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(new_loop)
            result["value"] = new_loop.run_until_complete(coro)
        except Exception as e:
            result["exception"] = e
        finally:
            new_loop.close()

    thread = threading.Thread(target=thread_target)
    thread.start()
    thread.join()

    if result["exception"]:
        raise result["exception"]

    return result["value"]


def ensure_async(func):
    """
    Decorator to ensure function is async-compatible
    If the function is sync, wrap it to run in thread pool
    """
    if asyncio.iscoroutinefunction(func):
        return func

    @wraps(func)
    async def async_wrapper(*args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args, **kwargs))

    return async_wrapper
