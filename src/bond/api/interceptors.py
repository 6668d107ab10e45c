"""Request interceptors.

Interceptors run in registration order at three fixed points of a request:
before dispatch, after a response arrives, and when a normalized error is
about to be raised. Any stage may be a coroutine.
"""

import inspect
import logging
from abc import ABC
from typing import Any, Callable, Optional, Sequence

import httpx

from bond.api.errors import APIError
from bond.api.types import RequestOptions

logger = logging.getLogger(__name__)


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


class Interceptor(ABC):
    """Base class for request interceptors.

    Every stage is a no-op by default; override the ones you need.
    """

    async def before_send(self, url: str, options: RequestOptions) -> None:
        """Called with the final URL and outgoing options.

        Raising here aborts the request; the exception reaches the caller
        unchanged.
        """
        pass

    async def after_receive(self, response: httpx.Response) -> None:
        """Called with the raw response before its status is inspected.

        Raising here aborts the request; the exception reaches the caller
        unchanged.
        """
        pass

    async def on_error(self, error: APIError) -> None:
        """Called with the normalized error before it is raised."""
        pass


class CallbackInterceptor(Interceptor):
    """Adapts plain callbacks (sync or async) to the Interceptor interface."""

    def __init__(
        self,
        on_request: Optional[Callable[[str, RequestOptions], Any]] = None,
        on_response: Optional[Callable[[httpx.Response], Any]] = None,
        on_error: Optional[Callable[[APIError], Any]] = None,
    ):
        self._on_request = on_request
        self._on_response = on_response
        self._on_error = on_error

    @property
    def is_empty(self) -> bool:
        return not (self._on_request or self._on_response or self._on_error)

    async def before_send(self, url: str, options: RequestOptions) -> None:
        if self._on_request:
            await maybe_await(self._on_request(url, options))

    async def after_receive(self, response: httpx.Response) -> None:
        if self._on_response:
            await maybe_await(self._on_response(response))

    async def on_error(self, error: APIError) -> None:
        if self._on_error:
            await maybe_await(self._on_error(error))


class InterceptorChain:
    """Ordered interceptors for one client."""

    def __init__(self, interceptors: Sequence[Interceptor] = ()):
        self._interceptors = tuple(interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)

    def __iter__(self):
        return iter(self._interceptors)

    async def before_send(self, url: str, options: RequestOptions) -> None:
        for interceptor in self._interceptors:
            await interceptor.before_send(url, options)

    async def after_receive(self, response: httpx.Response) -> None:
        for interceptor in self._interceptors:
            await interceptor.after_receive(response)

    async def on_error(self, error: APIError) -> None:
        """Notify every interceptor of an error.

        A failing interceptor is logged and skipped so it cannot replace
        the error being reported.
        """
        for interceptor in self._interceptors:
            try:
                await interceptor.on_error(error)
            except Exception:
                logger.exception(
                    f"on_error interceptor {type(interceptor).__name__} failed "
                    f"while reporting status={error.status} code={error.code}"
                )
