"""Background event loop for running coroutines from synchronous code.

Async database engines keep pooled connections bound to the loop that opened
them, so synchronous callers share one long-lived loop instead of starting a
fresh one per call.
"""

import asyncio
import threading
from typing import Any, Coroutine, Optional, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_loop: Optional[asyncio.AbstractEventLoop] = None
_lock = threading.Lock()


def background_loop() -> asyncio.AbstractEventLoop:
    """Return the shared loop, starting its daemon thread on first use."""
    global _loop
    with _lock:
        if _loop is None or _loop.is_closed():
            _loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=_loop.run_forever, name="structedit-loop", daemon=True
            )
            thread.start()
            logger.debug("Started background event loop")
        return _loop


def run_sync(coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
    """Run ``coro`` on the shared loop and block until it finishes.

    Must not be called from the shared loop's own thread.
    """
    future = asyncio.run_coroutine_threadsafe(coro, background_loop())
    return future.result(timeout)
