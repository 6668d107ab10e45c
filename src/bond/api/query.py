"""Query keys, invalidation filters and default cache policy.

Query keys are tuples whose first element is a scope string. Keys that
share a prefix are related, so invalidating ("users",) covers
("users", "detail", "42") as well.

Example:
    user_keys = create_query_keys(
        "users",
        {
            "list": lambda filters=None: ["list", filters],
            "detail": lambda user_id: ["detail", user_id],
        },
    )

    user_keys.all                  # ("users",)
    user_keys.keys.detail("123")   # ("users", "detail", "123")
"""

import functools
from collections.abc import Mapping as MappingABC
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

QueryKeyPart = Union[str, int, float, bool, None, Mapping[str, Any]]
QueryKey = tuple[QueryKeyPart, ...]
KeyBuilder = Callable[..., Any]


def query_key(*parts: QueryKeyPart) -> QueryKey:
    """Build an ad-hoc query key from its parts."""
    return tuple(parts)


def is_key_prefix(prefix: QueryKey, key: QueryKey) -> bool:
    """Check whether key starts with prefix (structural comparison)."""
    prefix, key = tuple(prefix), tuple(key)
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


def _scoped(scope: str, name: str, builder: KeyBuilder) -> Callable[..., QueryKey]:
    @functools.wraps(builder)
    def build(*args: Any, **kwargs: Any) -> QueryKey:
        parts = builder(*args, **kwargs)
        if isinstance(parts, (str, bytes)) or not isinstance(parts, SequenceABC):
            raise TypeError(
                f"Key builder {scope}.{name} must return a list or tuple, "
                f"got {type(parts).__name__}"
            )
        return (scope, *parts)

    return build


class QueryKeys:
    """Read-only set of scoped key builders.

    Builders are reachable as attributes (``keys.detail("1")``) and by
    name (``keys["by-chain"]``), so any string works as a builder name.
    """

    __slots__ = ("_builders",)

    def __init__(self, builders: Mapping[str, Callable[..., QueryKey]]):
        object.__setattr__(self, "_builders", MappingProxyType(dict(builders)))

    def __getattr__(self, name: str) -> Callable[..., QueryKey]:
        builders = object.__getattribute__(self, "_builders")
        try:
            return builders[name]
        except KeyError:
            raise AttributeError(f"No key builder named {name!r}") from None

    def __getitem__(self, name: str) -> Callable[..., QueryKey]:
        return self._builders[name]

    def __contains__(self, name: object) -> bool:
        return name in self._builders

    def __iter__(self) -> Iterator[str]:
        return iter(self._builders)

    def __len__(self) -> int:
        return len(self._builders)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("QueryKeys is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("QueryKeys is immutable")

    def __repr__(self) -> str:
        return f"QueryKeys({list(self._builders)})"


class QueryKeyFactory:
    """Scope bound to a fixed set of named key builders.

    The builders are wrapped once, at construction, into an immutable
    QueryKeys object exposed as ``keys``.
    """

    __slots__ = ("_scope", "_keys")

    def __init__(self, scope: str, builders: Mapping[str, KeyBuilder]):
        if not scope:
            raise ValueError("Query key scope must be a non-empty string")

        for name, builder in builders.items():
            if not callable(builder):
                raise TypeError(f"Key builder {scope}.{name} is not callable")

        self._scope = scope
        self._keys = QueryKeys(
            {name: _scoped(scope, name, builder) for name, builder in builders.items()}
        )

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def all(self) -> QueryKey:
        """Key matching every query under this scope."""
        return (self._scope,)

    @property
    def keys(self) -> QueryKeys:
        return self._keys

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._keys)

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_keys"):
            raise AttributeError("QueryKeyFactory is immutable")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"QueryKeyFactory(scope={self._scope!r}, keys={list(self.names)})"


def create_query_keys(scope: str, builders: Mapping[str, KeyBuilder]) -> QueryKeyFactory:
    """Create a query key factory for consistent key generation."""
    return QueryKeyFactory(scope, builders)


# ======================
# Invalidation filters
# ======================


@dataclass(frozen=True)
class QueryFilter:
    """Filter matching queries by key prefix, or by exact key."""

    query_key: QueryKey
    exact: bool = False

    def matches(self, key: QueryKey) -> bool:
        if self.exact:
            return tuple(key) == tuple(self.query_key)
        return is_key_prefix(self.query_key, key)


@dataclass(frozen=True)
class PredicateFilter:
    """Filter matching queries whose key satisfies a predicate."""

    fn: Callable[[QueryKey], bool]

    def predicate(self, query: Any) -> bool:
        """Evaluate against a cached query object exposing ``query_key``."""
        return bool(self.fn(tuple(query.query_key)))

    def matches(self, key: QueryKey) -> bool:
        return bool(self.fn(tuple(key)))


def scope_filter(scope: str) -> QueryFilter:
    """Filter for every query under a scope."""
    return QueryFilter(query_key=(scope,))


def exact_filter(key: QueryKey) -> QueryFilter:
    """Filter for one exact key."""
    return QueryFilter(query_key=tuple(key), exact=True)


def predicate_filter(fn: Callable[[QueryKey], bool]) -> PredicateFilter:
    """Filter for keys accepted by fn."""
    return PredicateFilter(fn=fn)


# ======================
# Cache policy
# ======================

RETRY_BASE_DELAY = 1.0  # seconds
RETRY_MAX_DELAY = 30.0  # seconds


def retry_delay(attempt_index: int) -> float:
    """Exponential backoff: 1s, 2s, 4s ... capped at 30s."""
    return min(RETRY_BASE_DELAY * 2**attempt_index, RETRY_MAX_DELAY)


class QueryDefaults(BaseModel):
    """Default options for reads. Durations are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stale_time: float = Field(default=5 * 60, ge=0, description="How long data stays fresh")
    gc_time: float = Field(
        default=30 * 60, ge=0, description="How long inactive data stays cached"
    )
    retry: int = Field(default=3, ge=0, description="Retries for failed reads")
    retry_delay: Callable[[int], float] = Field(default=retry_delay)
    refetch_on_window_focus: bool = True
    # True refetches on mount only when stale; "always" ignores freshness
    refetch_on_mount: Union[bool, Literal["always"]] = True
    refetch_on_reconnect: bool = True


class MutationDefaults(BaseModel):
    """Default options for writes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    retry: int = Field(default=1, ge=0, description="Retries for failed writes")


class QueryClientConfig(BaseModel):
    """Policy handed to the query/cache runtime."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    queries: QueryDefaults = Field(default_factory=QueryDefaults)
    mutations: MutationDefaults = Field(default_factory=MutationDefaults)


DEFAULT_QUERY_CLIENT_CONFIG = QueryClientConfig()


def _merge(model: BaseModel, updates: Mapping[str, Any]) -> BaseModel:
    values = {name: getattr(model, name) for name in type(model).model_fields}
    values.update(updates)
    return type(model)(**values)


def create_query_client_config(
    overrides: Optional[Mapping[str, Any]] = None,
) -> QueryClientConfig:
    """Merge overrides over the default policy.

    ``queries`` and ``mutations`` are merged key by key, so overriding
    ``{"queries": {"stale_time": 600}}`` keeps every other default.
    """
    overrides = dict(overrides or {})
    unknown = set(overrides) - set(QueryClientConfig.model_fields)
    if unknown:
        raise ValueError(f"Unknown query client options: {sorted(unknown)}")

    sections = {}
    for section in QueryClientConfig.model_fields:
        updates = overrides.get(section) or {}
        if not isinstance(updates, MappingABC):
            raise TypeError(f"{section} overrides must be a mapping")
        sections[section] = _merge(getattr(DEFAULT_QUERY_CLIENT_CONFIG, section), updates)

    return QueryClientConfig(**sections)
