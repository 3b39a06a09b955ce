import asyncio
import concurrent.futures
from typing import Any, Coroutine, TypeVar


T = TypeVar("T")


def asyncio_run_in_thread(coro: Coroutine[Any, Any, T]) -> T:
    """
    Runs the coroutine to completion on a fresh event loop in a worker thread,
    so it also works when the calling thread already has a running loop.
    """
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()
