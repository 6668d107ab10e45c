"""Request, response and client configuration types."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    Literal,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

import httpx
from pydantic import BaseModel, ConfigDict, Field

from bond.api.cancellation import CancellationToken

if TYPE_CHECKING:
    from bond.api.interceptors import Interceptor
    from bond.config import Settings

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0

ParamValue = Union[str, int, float, bool, None]
Credentials = Literal["omit", "same-origin", "include"]

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class HTTPMethod(str, Enum):
    """Supported HTTP methods for API requests."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    @property
    def allows_body(self) -> bool:
        return self not in (HTTPMethod.GET, HTTPMethod.DELETE)


def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class RequestConfig:
    """Per-call options. Anything left unset falls back to the client default."""

    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, ParamValue] = field(default_factory=dict)
    timeout: Optional[float] = None  # seconds
    credentials: Credentials = "same-origin"
    signal: Optional[CancellationToken] = None
    skip_auth: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze(self.headers))
        object.__setattr__(self, "params", _freeze(self.params))
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to issue one request. Never mutated after creation."""

    method: HTTPMethod
    endpoint: str
    body: Any = None
    config: RequestConfig = field(default_factory=RequestConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HTTPMethod(self.method))

    @property
    def has_body(self) -> bool:
        return self.body is not None and self.method.allows_body


@dataclass
class RequestOptions:
    """Outgoing request as seen by before-send interceptors.

    Interceptors may edit headers in place; the edited values are sent.
    """

    method: HTTPMethod
    headers: httpx.Headers
    credentials: Credentials
    content: Optional[bytes] = None
    signal: Optional[CancellationToken] = None


@dataclass(frozen=True)
class APIClientConfig:
    """Configuration shared read-only by every request of one client."""

    base_url: str
    get_auth_token: Optional[TokenProvider] = None
    default_headers: Mapping[str, str] = field(default_factory=dict)
    default_timeout: float = DEFAULT_TIMEOUT  # seconds
    on_request: Optional[Callable[[str, RequestOptions], Any]] = None
    on_response: Optional[Callable[[httpx.Response], Any]] = None
    on_error: Optional[Callable[[Any], Any]] = None
    interceptors: Sequence["Interceptor"] = ()
    cookies: Mapping[str, str] = field(default_factory=dict)
    transport: Optional[httpx.AsyncBaseTransport] = None

    def __post_init__(self) -> None:
        try:
            url = httpx.URL(self.base_url)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid base_url {self.base_url!r}: {e}") from e
        if not url.scheme or not url.host:
            raise ValueError(
                f"base_url must be an absolute URL with scheme and host: {self.base_url!r}"
            )
        if self.default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {self.default_timeout}")

        object.__setattr__(self, "default_headers", _freeze(self.default_headers))
        object.__setattr__(self, "cookies", _freeze(self.cookies))
        object.__setattr__(self, "interceptors", tuple(self.interceptors))

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "APIClientConfig":
        """Build a client configuration from application settings."""
        values: dict[str, Any] = {
            "base_url": settings.api_base_url,
            "default_timeout": settings.api_timeout,
        }
        if settings.api_token:
            token = settings.api_token
            values["get_auth_token"] = lambda: token
        values.update(overrides)
        return cls(**values)


class PaginationMeta(BaseModel):
    """Pagination metadata attached to list responses."""

    model_config = ConfigDict(populate_by_name=True)

    page: Optional[int] = Field(None, description="Current page")
    per_page: Optional[int] = Field(None, alias="perPage", description="Items per page")
    total: Optional[int] = Field(None, description="Total number of items")
    total_pages: Optional[int] = Field(
        None, alias="totalPages", description="Total number of pages"
    )


class APIResponse(BaseModel, Generic[T]):
    """Conventional response envelope used by Bond endpoints."""

    data: T
    success: bool
    message: Optional[str] = None
    meta: Optional[PaginationMeta] = None
