"""Typed API client and query-key helpers for the Bond app."""

from bond.api.cancellation import CancellationToken, merge_tokens, run_cancellable
from bond.api.client import APIClient, build_url, create_api_client
from bond.api.errors import APIClientError, APIError, BondError, OperationCancelled
from bond.api.interceptors import CallbackInterceptor, Interceptor
from bond.api.query import (
    DEFAULT_QUERY_CLIENT_CONFIG,
    PredicateFilter,
    QueryClientConfig,
    QueryFilter,
    QueryKey,
    QueryKeyFactory,
    QueryKeys,
    QueryKeyPart,
    create_query_client_config,
    create_query_keys,
    exact_filter,
    predicate_filter,
    query_key,
    retry_delay,
    scope_filter,
)
from bond.api.types import (
    APIClientConfig,
    APIResponse,
    HTTPMethod,
    PaginationMeta,
    RequestConfig,
    RequestDescriptor,
    RequestOptions,
)

__all__ = [
    # Client
    "APIClient",
    "APIClientConfig",
    "create_api_client",
    "build_url",
    "HTTPMethod",
    "RequestConfig",
    "RequestDescriptor",
    "RequestOptions",
    "APIResponse",
    "PaginationMeta",
    # Errors
    "APIError",
    "APIClientError",
    "BondError",
    "OperationCancelled",
    # Interception and cancellation
    "Interceptor",
    "CallbackInterceptor",
    "CancellationToken",
    "merge_tokens",
    "run_cancellable",
    # Query keys
    "QueryKey",
    "QueryKeyPart",
    "QueryKeyFactory",
    "QueryKeys",
    "create_query_keys",
    "query_key",
    "QueryFilter",
    "PredicateFilter",
    "scope_filter",
    "exact_filter",
    "predicate_filter",
    "QueryClientConfig",
    "DEFAULT_QUERY_CLIENT_CONFIG",
    "create_query_client_config",
    "retry_delay",
]
