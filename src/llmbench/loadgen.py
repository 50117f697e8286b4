# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from .client import EndpointClient
from .types import BenchmarkSpec, ChatMessage, FailedResult, ProgressEvent, TimedResult

logger = logging.getLogger(__name__)

VALID_ROLES = ("system", "user", "assistant")


def check_counts(request_count: int, concurrency: int) -> None:
    if request_count < 1:
        raise ValueError(f"request count must be at least 1, got {request_count}")
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")


def load_messages(path: str | Path) -> List[ChatMessage]:
    """Read a conversation from a JSONL file, one {"role", "content"} object per line."""
    messages: List[ChatMessage] = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            obj = json.loads(line)
            role = obj.get("role", "user")
            if role not in VALID_ROLES:
                raise ValueError(f"{path}:{lineno}: unknown role {role!r}")
            messages.append(ChatMessage(role=role, content=obj["content"]))
    if not messages:
        raise ValueError(f"No messages found in {path}")
    return messages


async def run_endpoint(
    client: EndpointClient,
    spec: BenchmarkSpec,
    request_count: int,
    concurrency: int,
    *,
    progress: Optional[asyncio.Queue] = None,
    cancel: Optional[asyncio.Event] = None,
) -> List[TimedResult]:
    """Send `request_count` requests to one endpoint, at most `concurrency` at a time.

    Results are returned in completion order. Failed requests are recorded, not
    raised. A ProgressEvent is queued after every completion. Once `cancel` is
    set, no new request is dispatched; requests already in flight finish normally.
    """
    check_counts(request_count, concurrency)

    endpoint = client.endpoint
    request = spec.with_model(endpoint.model)
    sem = asyncio.Semaphore(min(concurrency, request_count))
    lock = asyncio.Lock()
    results: List[TimedResult] = []

    async def bounded() -> None:
        async with sem:
            if cancel is not None and cancel.is_set():
                return
            t0 = time.perf_counter()
            try:
                result = await client.send(request)
            except Exception as e:
                logger.exception("%s: unexpected error from client", endpoint.name)
                result = FailedResult(
                    endpoint=endpoint.name,
                    model=request.model,
                    response_time_s=time.perf_counter() - t0,
                    error=f"unexpected error: {e}",
                    is_streaming=request.stream,
                )

            async with lock:
                results.append(result)
                if progress is not None:
                    progress.put_nowait(ProgressEvent(endpoint.name, len(results), request_count))

    await asyncio.gather(*(bounded() for _ in range(request_count)))

    if len(results) < request_count:
        logger.info("%s: cancelled after %d/%d requests", endpoint.name, len(results), request_count)
    return results
