# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from tqdm import tqdm

from .types import ProgressEvent, Summary

RULE = "=" * 80


async def render_progress(queue: asyncio.Queue, totals: Dict[str, int], *, enabled: bool = True) -> None:
    """Consume ProgressEvents until a None sentinel, drawing one tqdm bar per endpoint.

    Events that pile up between redraws are coalesced: only the latest count per
    endpoint is drawn.
    """
    bars = {
        name: tqdm(total=total, desc=name, position=i, unit="req", leave=True, disable=not enabled)
        for i, (name, total) in enumerate(totals.items())
    }
    try:
        done = False
        while not done:
            latest: Dict[str, ProgressEvent] = {}
            event: Optional[ProgressEvent] = await queue.get()
            while True:
                if event is None:
                    done = True
                    break
                latest[event.endpoint] = event
                try:
                    event = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
            for name, ev in latest.items():
                bar = bars.get(name)
                if bar is not None and ev.completed > bar.n:
                    bar.update(ev.completed - bar.n)
    finally:
        for bar in bars.values():
            bar.close()


def format_seconds(s: Optional[float]) -> str:
    if s is None:
        return "n/a"
    if s < 1.0:
        return f"{s * 1000:.1f}ms"
    return f"{s:.3f}s"


def format_connection_results(results: Dict[str, Optional[str]]) -> List[str]:
    lines = []
    for name in sorted(results):
        err = results[name]
        lines.append(f"FAIL {name}: {err}" if err else f"OK   {name}: connected")
    return lines


def format_summary(s: Summary) -> str:
    title = f"{s.endpoint.upper()} - {s.model}" if s.model else s.endpoint.upper()
    lines = [
        "",
        title,
        "-" * 50,
        f"Total Requests:     {s.total_requests}",
        f"Successful:         {s.successful_requests}",
        f"Failed:             {s.failed_requests}",
        f"Error Rate:         {s.error_rate:.2f}%",
        f"Avg Response Time:  {format_seconds(s.avg_response_time_s)}",
        f"Min Response Time:  {format_seconds(s.min_response_time_s)}",
        f"Max Response Time:  {format_seconds(s.max_response_time_s)}",
        f"P95 Response Time:  {format_seconds(s.p95_response_time_s)}",
        f"Total Tokens:       {s.total_tokens}",
    ]
    st = s.streaming
    if st is not None:
        lines += [
            "",
            "STREAMING METRICS",
            "-" * 20,
            f"Avg Time to First Token: {format_seconds(st.avg_time_to_first_token_s)}",
            f"Min Time to First Token: {format_seconds(st.min_time_to_first_token_s)}",
            f"Max Time to First Token: {format_seconds(st.max_time_to_first_token_s)}",
        ]
        if st.avg_token_throughput is not None:
            lines += [
                f"Avg Token Throughput:    {st.avg_token_throughput:.2f} tokens/sec",
                f"Min Token Throughput:    {st.min_token_throughput:.2f} tokens/sec",
                f"Max Token Throughput:    {st.max_token_throughput:.2f} tokens/sec",
            ]
        else:
            lines.append("Token Throughput:        n/a")
    return "\n".join(lines)


def format_summaries(summaries: Dict[str, Summary]) -> str:
    parts = [RULE, "BENCHMARK RESULTS", RULE]
    for name in sorted(summaries):
        parts.append(format_summary(summaries[name]))
    parts += ["", RULE]
    return "\n".join(parts)
