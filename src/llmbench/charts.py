# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .types import Summary


def _bar_chart(names: List[str], values: List[float], ylabel: str, title: str, out: Path) -> Path:
    fig, ax = plt.subplots(figsize=(max(6, 1.2 * len(names)), 4))
    bars = ax.bar(names, values)
    for bar, v in zip(bars, values):
        ax.annotate(f"{v:.1f}", (bar.get_x() + bar.get_width() / 2, bar.get_height()),
                    ha="center", va="bottom", fontsize=8)
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    plt.setp(ax.get_xticklabels(), rotation=30, ha="right")
    fig.tight_layout()
    fig.savefig(out, dpi=200)
    plt.close(fig)
    return out


def write_charts(summaries: Dict[str, Summary], out_dir: str | Path) -> List[Path]:
    """Bar charts of average TTFT and token throughput. Non-streaming endpoints are skipped."""
    out = Path(out_dir)
    written: List[Path] = []

    ttft = {n: s.streaming.avg_time_to_first_token_s for n, s in summaries.items()
            if s.streaming is not None and s.streaming.avg_time_to_first_token_s}
    rate = {n: s.streaming.avg_token_throughput for n, s in summaries.items()
            if s.streaming is not None and s.streaming.avg_token_throughput}
    if not ttft and not rate:
        return written

    out.mkdir(parents=True, exist_ok=True)
    if ttft:
        names = sorted(ttft)
        written.append(_bar_chart(names, [ttft[n] * 1000 for n in names], "TTFT (ms)",
                                  "Average time to first token", out / "ttft_ms.png"))
    if rate:
        names = sorted(rate)
        written.append(_bar_chart(names, [rate[n] for n in names], "Throughput (tokens/s)",
                                  "Average token throughput", out / "throughput_tokens_per_s.png"))
    return written
