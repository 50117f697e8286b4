# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Dict, Optional, Sequence, Tuple

from .client import EndpointClient, OpenAIClient
from .display import render_progress
from .loadgen import check_counts, run_endpoint
from .tokens import TokenCounter
from .types import BenchmarkSpec, Endpoint, ResultSet

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0

ClientFactory = Callable[[Endpoint], EndpointClient]


def openai_client_factory(timeout_s: float = DEFAULT_TIMEOUT_S, count_tokens: bool = True) -> ClientFactory:
    """One OpenAIClient per endpoint, sharing a single token counter."""
    counter = TokenCounter.create() if count_tokens else None

    def make(endpoint: Endpoint) -> EndpointClient:
        return OpenAIClient(endpoint, timeout_s=timeout_s, token_counter=counter)

    return make


async def run_benchmark(
    endpoints: Sequence[Endpoint],
    spec: BenchmarkSpec,
    request_count: int,
    concurrency: int,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    progress: Optional[asyncio.Queue] = None,
    cancel: Optional[asyncio.Event] = None,
    client_factory: Optional[ClientFactory] = None,
) -> ResultSet:
    """Benchmark every endpoint concurrently and merge results by endpoint name.

    Concurrency is bounded per endpoint only; all endpoints start at once.
    """
    check_counts(request_count, concurrency)
    results: ResultSet = {}
    if not endpoints:
        logger.warning("No endpoints to benchmark")
        return results
    for e in endpoints:
        if not e.models:
            raise ValueError(f"endpoint {e.name!r} has no models configured")

    factory = client_factory or openai_client_factory(timeout_s)
    lock = asyncio.Lock()

    async def one(endpoint: Endpoint) -> None:
        async with factory(endpoint) as client:
            endpoint_results = await run_endpoint(
                client, spec, request_count, concurrency, progress=progress, cancel=cancel
            )
        async with lock:
            results[endpoint.name] = endpoint_results

    await asyncio.gather(*(one(e) for e in endpoints))
    return results


async def test_connections(
    endpoints: Sequence[Endpoint],
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    client_factory: Optional[ClientFactory] = None,
) -> Dict[str, Optional[str]]:
    """Probe every endpoint in parallel. Maps endpoint name to None (reachable) or an error."""
    factory = client_factory or openai_client_factory(timeout_s, count_tokens=False)

    async def probe(endpoint: Endpoint) -> Tuple[str, Optional[str]]:
        try:
            async with factory(endpoint) as client:
                return endpoint.name, await client.test_connection()
        except Exception as e:
            logger.exception("%s: unexpected error during connection test", endpoint.name)
            return endpoint.name, f"connection test failed: unexpected error: {e}"

    pairs = await asyncio.gather(*(probe(e) for e in endpoints))
    return dict(pairs)


async def run_with_progress(
    endpoints: Sequence[Endpoint],
    spec: BenchmarkSpec,
    request_count: int,
    concurrency: int,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    show_progress: bool = True,
    client_factory: Optional[ClientFactory] = None,
) -> ResultSet:
    """run_benchmark with tqdm progress bars; Ctrl-C stops dispatching and keeps partial results."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops and non-main threads do not support signal handlers.
        handler_installed = False

    queue: asyncio.Queue = asyncio.Queue()
    renderer = asyncio.create_task(
        render_progress(queue, {e.name: request_count for e in endpoints}, enabled=show_progress)
    )
    try:
        results = await run_benchmark(
            endpoints,
            spec,
            request_count,
            concurrency,
            timeout_s=timeout_s,
            progress=queue,
            cancel=cancel,
            client_factory=client_factory,
        )
    finally:
        queue.put_nowait(None)
        await renderer
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    if cancel.is_set():
        logger.warning("Benchmark interrupted; returning partial results")
    return results
