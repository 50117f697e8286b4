"""Fake endpoint clients and token counters shared by the tests."""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from llmbench.client import EndpointClient
from llmbench.types import (
    BenchmarkSpec,
    CompletionResult,
    Endpoint,
    FailedResult,
    StreamResult,
    TimedResult,
)


def make_endpoint(name: str = "alpha", models=("model-a",)) -> Endpoint:
    return Endpoint(name=name, base_url=f"http://{name}.invalid/v1", api_key="sk-test", models=tuple(models))


class FakeClient(EndpointClient):
    """Sleeps instead of calling the network and records how many calls overlap.

    `fail_on` holds 1-based call numbers that return a timeout failure.
    `on_call` is invoked with the call number at dispatch time.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        delay: float = 0.01,
        fail_on=(),
        raise_on=(),
        on_call: Optional[Callable[[int], None]] = None,
    ):
        super().__init__(endpoint)
        self.delay = delay
        self.fail_on = set(fail_on)
        self.raise_on = set(raise_on)
        self.on_call = on_call
        self.calls: List[BenchmarkSpec] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def _enter(self, spec: BenchmarkSpec) -> int:
        self.calls.append(spec)
        n = len(self.calls)
        if self.on_call is not None:
            self.on_call(n)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if n in self.raise_on:
            raise RuntimeError("boom")
        return n

    def _failure(self, spec: BenchmarkSpec) -> FailedResult:
        return FailedResult(
            endpoint=self.endpoint.name,
            model=spec.model,
            response_time_s=self.delay,
            error="request timed out after 30s",
            is_streaming=spec.stream,
        )

    async def send_once(self, spec: BenchmarkSpec) -> TimedResult:
        n = await self._enter(spec)
        if n in self.fail_on:
            return self._failure(spec)
        return CompletionResult(
            endpoint=self.endpoint.name, model=spec.model, response_time_s=self.delay, tokens_used=10
        )

    async def send_stream(self, spec: BenchmarkSpec) -> TimedResult:
        n = await self._enter(spec)
        if n in self.fail_on:
            return self._failure(spec)
        return StreamResult(
            endpoint=self.endpoint.name,
            model=spec.model,
            response_time_s=self.delay,
            tokens_used=30,
            streaming_tokens=20,
            time_to_first_token_s=self.delay / 2,
            streaming_duration_s=self.delay / 2,
            token_throughput=20 / (self.delay / 2),
        )


def fake_factory(**kwargs) -> Tuple[Callable[[Endpoint], FakeClient], Dict[str, FakeClient]]:
    clients: Dict[str, FakeClient] = {}

    def factory(endpoint: Endpoint) -> FakeClient:
        client = FakeClient(endpoint, **kwargs)
        clients[endpoint.name] = client
        return client

    return factory, clients


class WordCounter:
    """Token counter stand-in: one token per whitespace-separated word."""

    def count_tokens(self, text: str, model: str = "") -> int:
        return len(text.split())

    def count_chat_tokens(self, messages, model: str = "") -> int:
        return sum(len(m.content.split()) for m in messages)


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items
