# tests/conftest.py
"""
Shared fixtures for the llmsession test suite.

Provides a scripted model invoker that records every request it receives,
so responder and strategy tests can run without network access.
"""

from typing import Any, Callable, List, Optional

import pytest

from llmsession.cache.memory import InMemoryCacheProvider
from llmsession.models import InvocationRequest, InvocationResult, Message
from llmsession.providers.base import BaseInvoker


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInvoker(BaseInvoker):
    """
    Invoker returning scripted results.

    Each entry of `script` is either an InvocationResult, an exception to
    raise, or a callable taking the request and returning a result. When
    the script runs out, the invoker echoes the prompt back and issues
    sequential continuation tokens ("t1", "t2", ...) for stateful requests.
    """

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.requests: List[InvocationRequest] = []
        self.closed = False
        self._token_counter = 0

    def get_name(self) -> str:
        return "fake"

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        self.requests.append(request)
        if self.script:
            entry = self.script.pop(0)
            if isinstance(entry, Exception):
                raise entry
            if callable(entry):
                return entry(request)
            return entry
        prompt = request.input_messages()[-1].content
        text = f"echo: {prompt}"
        token = None
        if request.stateful:
            self._token_counter += 1
            token = f"t{self._token_counter}"
        return InvocationResult(text=text, messages=[Message.assistant(text)], continuation_token=token)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(fake_clock: FakeClock) -> InMemoryCacheProvider:
    return InMemoryCacheProvider(clock=fake_clock)


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def recorded_events() -> List[tuple]:
    return []


@pytest.fixture
def fault_handler(recorded_events: List[tuple]) -> Callable[[str, Any], None]:
    def _handler(kind: str, detail: Any) -> None:
        recorded_events.append((kind, detail))
    return _handler
