"""Integration test fixtures (fake DeepSource GraphQL server).

The GraphQL client is exercised end to end against an httpx MockTransport
that replays a scripted sequence of responses, so no network is needed.
"""

from typing import Any, Callable

import httpx
import pytest


class ScriptedDeepSource:
    """
    MockTransport handler that returns the scripted responses in order.

    Each entry is an ``httpx.Response``, an exception instance to raise, or a
    callable taking the request. The last entry repeats once the script runs out.
    """

    def __init__(self, *script: Any):
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.script)) - 1
        entry = self.script[index]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            entry = entry(request)
        # Fresh copy: a Response is bound to the request that received it
        return httpx.Response(entry.status_code, headers=entry.headers, content=entry.content)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def deepsource_server() -> Callable[..., ScriptedDeepSource]:
    """Factory fixture for a scripted DeepSource server.

    Usage:
        def test_something(deepsource_server):
            server = deepsource_server(httpx.Response(503), httpx.Response(200, json=...))
            transport = httpx.MockTransport(server)
    """
    return ScriptedDeepSource
