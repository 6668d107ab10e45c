"""Typed async HTTP client with auth, timeouts and error normalization.

Example:
    api = create_api_client(
        APIClientConfig(
            base_url="https://api.bond.app",
            get_auth_token=session.get_token,
        )
    )

    user = await api.get("/user/me")
    await api.post("/orders", {"pair": "0G/USDC", "side": "buy"})
"""

import json
import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx
from pydantic import BaseModel

from bond.api.cancellation import CancellationToken, merge_tokens, run_cancellable
from bond.api.errors import (
    ABORTED,
    ABORTED_MESSAGE,
    NETWORK_ERROR,
    TRANSPORT_STATUS,
    UNKNOWN_ERROR_MESSAGE,
    APIClientError,
    APIError,
    OperationCancelled,
)
from bond.api.interceptors import CallbackInterceptor, InterceptorChain, maybe_await
from bond.api.types import (
    APIClientConfig,
    Credentials,
    HTTPMethod,
    ParamValue,
    RequestConfig,
    RequestDescriptor,
    RequestOptions,
    TokenProvider,
)

logger = logging.getLogger(__name__)

NO_CONTENT = 204


def encode_param(value: ParamValue) -> str:
    """Encode a query parameter value the way browsers stringify it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_url(
    base_url: str,
    endpoint: str,
    params: Optional[Mapping[str, ParamValue]] = None,
) -> str:
    """Join base URL and endpoint with one slash and append query params.

    Params whose value is None are left out entirely.
    """
    base = base_url[:-1] if base_url.endswith("/") else base_url
    path = endpoint if endpoint.startswith("/") else f"/{endpoint}"

    url = httpx.URL(f"{base}{path}")

    if params:
        for key, value in params.items():
            if value is None:
                continue
            url = url.copy_add_param(key, encode_param(value))

    return str(url)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_body(body: Any) -> bytes:
    """Serialize a request body as JSON."""
    return json.dumps(body, default=_json_default).encode("utf-8")


def parse_error_response(response: httpx.Response) -> APIError:
    """Build an APIError from a failed response.

    Tries a JSON body first, then the raw text, then a generic message.
    """
    status = response.status_code
    message = f"Request failed with status {status}"
    code: Optional[str] = None
    details: Any = None

    try:
        body = response.json()
    except ValueError:
        text = response.text
        if text:
            message = text
    else:
        if isinstance(body, dict):
            message = str(body.get("message") or body.get("error") or message)
            if body.get("code") is not None:
                code = str(body["code"])
            nested = body.get("details")
            details = nested if nested is not None else body

    return APIError(status=status, message=message, code=code, details=details)


async def resolve_token(provider: TokenProvider) -> Optional[str]:
    """Call a token provider that may return a value or an awaitable."""
    token = await maybe_await(provider())
    return token or None


class APIClient:
    """HTTP client bound to one APIClientConfig.

    Every call is self-contained: a fresh httpx.AsyncClient is opened per
    request and nothing is kept between calls.
    """

    def __init__(self, config: APIClientConfig):
        self._config = config

        interceptors = list(config.interceptors)
        hooks = CallbackInterceptor(
            on_request=config.on_request,
            on_response=config.on_response,
            on_error=config.on_error,
        )
        if not hooks.is_empty:
            interceptors.insert(0, hooks)
        self._interceptors = InterceptorChain(interceptors)

        base = httpx.URL(config.base_url)
        self._origin = (base.scheme, base.host, base.port)

    @property
    def config(self) -> APIClientConfig:
        return self._config

    async def get(self, endpoint: str, config: Optional[RequestConfig] = None) -> Any:
        """Perform a GET request."""
        return await self.request(HTTPMethod.GET, endpoint, None, config)

    async def post(
        self, endpoint: str, body: Any = None, config: Optional[RequestConfig] = None
    ) -> Any:
        """Perform a POST request."""
        return await self.request(HTTPMethod.POST, endpoint, body, config)

    async def put(
        self, endpoint: str, body: Any = None, config: Optional[RequestConfig] = None
    ) -> Any:
        """Perform a PUT request."""
        return await self.request(HTTPMethod.PUT, endpoint, body, config)

    async def delete(self, endpoint: str, config: Optional[RequestConfig] = None) -> Any:
        """Perform a DELETE request."""
        return await self.request(HTTPMethod.DELETE, endpoint, None, config)

    async def patch(
        self, endpoint: str, body: Any = None, config: Optional[RequestConfig] = None
    ) -> Any:
        """Perform a PATCH request."""
        return await self.request(HTTPMethod.PATCH, endpoint, body, config)

    async def request(
        self,
        method: HTTPMethod,
        endpoint: str,
        body: Any = None,
        config: Optional[RequestConfig] = None,
    ) -> Any:
        descriptor = RequestDescriptor(
            method=method,
            endpoint=endpoint,
            body=body,
            config=config or RequestConfig(),
        )
        return await self.send(descriptor)

    async def send(self, descriptor: RequestDescriptor) -> Any:
        """Execute a request and return the decoded JSON payload.

        Returns:
            The decoded body, or None for 204 responses.

        Raises:
            APIClientError: For failing statuses, timeouts, cancellation
                and transport failures.
        """
        request_config = descriptor.config
        url = build_url(self._config.base_url, descriptor.endpoint, request_config.params)

        headers = httpx.Headers({"Content-Type": "application/json"})
        headers.update(self._config.default_headers)
        headers.update(request_config.headers)

        if not request_config.skip_auth and self._config.get_auth_token:
            token = await resolve_token(self._config.get_auth_token)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        options = RequestOptions(
            method=descriptor.method,
            headers=headers,
            credentials=request_config.credentials,
            content=serialize_body(descriptor.body) if descriptor.has_body else None,
            signal=request_config.signal,
        )

        await self._interceptors.before_send(url, options)

        timeout = request_config.timeout
        if timeout is None:
            timeout = self._config.default_timeout

        logger.debug(f"Request: {options.method.value} {url} (timeout={timeout}s)")

        try:
            response = await self._dispatch(url, options, timeout)
        except APIClientError as e:
            await self._interceptors.on_error(e.error)
            raise
        except OperationCancelled as e:
            raise await self._fail(
                APIError(status=TRANSPORT_STATUS, message=ABORTED_MESSAGE, code=ABORTED)
            ) from e
        except Exception as e:
            raise await self._fail(
                APIError(
                    status=TRANSPORT_STATUS,
                    message=str(e) or UNKNOWN_ERROR_MESSAGE,
                    code=NETWORK_ERROR,
                )
            ) from e

        logger.debug(f"Response: {response.status_code} {options.method.value} {url}")

        await self._interceptors.after_receive(response)

        if not response.is_success:
            raise await self._fail(parse_error_response(response))

        if response.status_code == NO_CONTENT:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise await self._fail(
                APIError(
                    status=TRANSPORT_STATUS,
                    message=str(e) or UNKNOWN_ERROR_MESSAGE,
                    code=NETWORK_ERROR,
                )
            ) from e

    async def _dispatch(
        self, url: str, options: RequestOptions, timeout: float
    ) -> httpx.Response:
        """Send the request, racing it against the deadline and caller signal."""
        deadline = CancellationToken()
        timer = deadline.cancel_after(timeout)
        try:
            with merge_tokens(deadline, options.signal) as signal:
                return await run_cancellable(self._transport_call(url, options), signal)
        finally:
            timer.cancel()

    async def _transport_call(self, url: str, options: RequestOptions) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._config.transport,
            cookies=self._cookies_for(options.credentials),
            event_hooks=self._event_hooks_for(options.credentials),
            timeout=None,
            follow_redirects=True,
        ) as client:
            return await client.request(
                options.method.value,
                url,
                headers=options.headers,
                content=options.content,
            )

    def _cookies_for(self, credentials: Credentials) -> Optional[dict[str, str]]:
        if not self._config.cookies or credentials == "omit":
            return None
        return dict(self._config.cookies)

    def _event_hooks_for(self, credentials: Credentials) -> dict[str, list]:
        if not self._config.cookies or credentials != "same-origin":
            return {}

        # Runs before every hop, redirects included, after httpx attaches the jar
        async def drop_cross_origin_cookies(request: httpx.Request) -> None:
            url = request.url
            if (url.scheme, url.host, url.port) != self._origin and "Cookie" in request.headers:
                logger.debug(f"Dropping cookies for cross-origin request to {url.host}")
                del request.headers["Cookie"]

        return {"request": [drop_cross_origin_cookies]}

    async def _fail(self, error: APIError) -> APIClientError:
        """Report an error to interceptors and return the exception to raise."""
        logger.warning(
            f"API request failed: status={error.status} code={error.code} "
            f"message={error.message}"
        )
        await self._interceptors.on_error(error)
        return APIClientError(error)


def create_api_client(
    config: Optional[APIClientConfig] = None, **kwargs: Any
) -> APIClient:
    """Create an API client from a config object or keyword arguments."""
    if config is None:
        config = APIClientConfig(**kwargs)
    elif kwargs:
        raise TypeError("Pass either an APIClientConfig or keyword arguments, not both")
    return APIClient(config)
