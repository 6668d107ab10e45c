"""Cancellation tokens for bounding async operations.

A CancellationToken is a one-shot signal. Tokens can be merged so that a
downstream token fires when any upstream token fires, and any awaitable can
be raced against a token with run_cancellable().

Example:
    token = CancellationToken()
    timer = token.cancel_after(5.0)
    try:
        with merge_tokens(token, caller_token) as signal:
            result = await run_cancellable(fetch(), signal)
    finally:
        timer.cancel()
"""

import asyncio
import inspect
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

from bond.api.errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Optional[str]], Any]


class CancellationToken:
    """One-shot cancellation signal.

    Cancelling twice is a no-op; the first reason wins. Listeners run
    synchronously inside cancel() and are dropped afterwards.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._listeners: list[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Fire the token and notify listeners."""
        if self._event.is_set():
            return

        self._reason = reason
        self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it.

        If the token is already cancelled the listener runs immediately.
        """
        if self.cancelled:
            listener(self._reason)
            return lambda: None

        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def wait(self) -> Optional[str]:
        """Wait until the token is cancelled and return the reason."""
        await self._event.wait()
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self._reason)

    def cancel_after(self, delay: float, reason: str = "timeout") -> asyncio.TimerHandle:
        """Schedule cancellation on the running loop.

        Returns the timer handle; the caller owns it and must cancel it.
        """
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.cancel, reason)

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self.cancelled else "active"
        return f"<CancellationToken {state}>"


@contextmanager
def merge_tokens(*tokens: Optional[CancellationToken]) -> Iterator[CancellationToken]:
    """Yield a token that is cancelled when any of the given tokens is.

    None entries are ignored. Listeners registered on the upstream tokens
    are removed when the block exits.
    """
    merged = CancellationToken()
    removers: list[Callable[[], None]] = []

    try:
        for token in tokens:
            if token is None:
                continue
            removers.append(token.add_listener(merged.cancel))
        yield merged
    finally:
        for remove in removers:
            remove()


async def run_cancellable(awaitable: Awaitable[T], token: CancellationToken) -> T:
    """Await an operation unless the token fires first.

    Raises:
        OperationCancelled: If the token fires before the operation settles.
            The operation is cancelled and awaited before raising.

    If the calling task is cancelled instead, the operation is cancelled
    and awaited as well before CancelledError propagates.
    """
    if token.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled(token.reason)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())

    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)

        # An operation that settled wins over a token that fired in the same tick
        if task.done():
            return task.result()

        logger.debug(f"Cancelling operation: {token.reason}")
        task.cancel()
        await asyncio.wait({task})
        raise OperationCancelled(token.reason)

    finally:
        pending = [f for f in (task, waiter) if not f.done()]
        for f in pending:
            f.cancel()
        # Operation teardown must finish before control returns to the caller
        if pending:
            await asyncio.shield(asyncio.gather(*pending, return_exceptions=True))
