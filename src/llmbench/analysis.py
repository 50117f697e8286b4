# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .results import load_results
from .types import ResultSet, StreamingStats, StreamResult, Summary, TimedResult


def _percentile(x: Sequence[float], p: float) -> float:
    if not x:
        return 0.0
    return float(np.percentile(np.array(x, dtype=np.float64), p))


def _min_avg_max(x: Sequence[float]) -> Tuple[float, float, float]:
    # The first sample seeds both bounds; a 0.0 default would hide a real minimum.
    lo = hi = x[0]
    for v in x[1:]:
        if v < lo:
            lo = v
        if v > hi:
            hi = v
    return lo, sum(x) / len(x), hi


def streaming_stats(records: Sequence[TimedResult]) -> Optional[StreamingStats]:
    """TTFT/throughput over successful streams with a positive measurement, or None."""
    streams = [r for r in records if isinstance(r, StreamResult)]
    ttfts = [r.time_to_first_token_s for r in streams if r.time_to_first_token_s and r.time_to_first_token_s > 0]
    rates = [r.token_throughput for r in streams if r.token_throughput and r.token_throughput > 0]
    if not ttfts and not rates:
        return None

    stats: Dict[str, float] = {}
    if ttfts:
        lo, avg, hi = _min_avg_max(ttfts)
        stats.update(min_time_to_first_token_s=lo, avg_time_to_first_token_s=avg, max_time_to_first_token_s=hi)
    if rates:
        lo, avg, hi = _min_avg_max(rates)
        stats.update(min_token_throughput=lo, avg_token_throughput=avg, max_token_throughput=hi)
    return StreamingStats(**stats)


def summarize_endpoint(name: str, records: Sequence[TimedResult]) -> Summary:
    total = len(records)
    ok = [r for r in records if r.success]
    failed = total - len(ok)

    tokens = 0
    for r in ok:
        tokens += r.streaming_tokens if isinstance(r, StreamResult) else r.tokens_used

    latencies: List[float] = [r.response_time_s for r in records]
    lo = avg = hi = 0.0
    if latencies:
        lo, avg, hi = _min_avg_max(latencies)

    return Summary(
        endpoint=name,
        model=records[0].model if records else "",
        total_requests=total,
        successful_requests=len(ok),
        failed_requests=failed,
        error_rate=(failed / total * 100.0) if total else 0.0,
        avg_response_time_s=avg,
        min_response_time_s=lo,
        max_response_time_s=hi,
        p50_response_time_s=_percentile(latencies, 50),
        p95_response_time_s=_percentile(latencies, 95),
        p99_response_time_s=_percentile(latencies, 99),
        total_tokens=tokens,
        streaming=streaming_stats(ok),
    )


def summarize(results: ResultSet) -> Dict[str, Summary]:
    """One Summary per endpoint. Pure: the same ResultSet always yields equal summaries."""
    return {name: summarize_endpoint(name, records) for name, records in results.items()}


def summaries_frame(summaries: Dict[str, Summary]) -> pd.DataFrame:
    """Flatten summaries into one row per endpoint, sorted by endpoint name."""
    rows = []
    for s in summaries.values():
        row = asdict(s)
        streaming = row.pop("streaming") or {}
        row.update(streaming)
        rows.append(row)
    cols = [
        "endpoint", "model", "total_requests", "successful_requests", "failed_requests", "error_rate",
        "avg_response_time_s", "min_response_time_s", "max_response_time_s",
        "p50_response_time_s", "p95_response_time_s", "p99_response_time_s", "total_tokens",
        "avg_time_to_first_token_s", "min_time_to_first_token_s", "max_time_to_first_token_s",
        "avg_token_throughput", "min_token_throughput", "max_token_throughput",
    ]
    df = pd.DataFrame(rows, columns=cols)
    df.sort_values("endpoint", inplace=True)
    df.reset_index(drop=True, inplace=True)
    return df


def load_results_dir(run_dir: str | Path) -> pd.DataFrame:
    """Summary rows from every saved results file under run_dir, tagged with run metadata."""
    run_dir = Path(run_dir)
    frames: List[pd.DataFrame] = []
    for p in sorted(run_dir.glob("**/*")):
        if p.suffix.lower() not in (".json", ".yaml", ".yml"):
            continue
        rf = load_results(p)
        df = summaries_frame(rf.summaries)
        df.insert(0, "run", p.stem)
        df.insert(1, "concurrency", rf.metadata.concurrency)
        df.insert(2, "streaming", rf.metadata.streaming)
        frames.append(df)
    if not frames:
        raise FileNotFoundError(f"No results files under {run_dir}")
    out = pd.concat(frames, ignore_index=True)
    out.sort_values(["endpoint", "concurrency", "run"], inplace=True)
    return out
