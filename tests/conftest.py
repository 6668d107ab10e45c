"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import Callable

import httpx
import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"

from bond.api import APIClient, APIClientConfig, create_api_client

BASE_URL = "https://api.bond.app"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it receives."""

    def __init__(self, handler: Callable):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def json_handler(payload, status_code: int = 200):
    """Handler that always answers with the given JSON payload."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return handler


async def never_settles(request: httpx.Request) -> httpx.Response:
    """Handler that hangs until cancelled."""
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


@pytest.fixture
def make_client() -> Callable[..., tuple[APIClient, RecordingTransport]]:
    """Build a client wired to a recording mock transport."""

    def factory(handler=None, **config) -> tuple[APIClient, RecordingTransport]:
        transport = RecordingTransport(handler or json_handler({"ok": True}))
        config.setdefault("base_url", BASE_URL)
        client = create_api_client(APIClientConfig(transport=transport, **config))
        return client, transport

    return factory
