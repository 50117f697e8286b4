# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

"""Sweep concurrency levels against all configured endpoints and save one results file per level.

Examples
--------
python scripts/run_matrix.py --config llmbench.yaml --concurrency 1 2 4 8 --n-requests 50 --streaming
python scripts/analyze_results.py --runs runs/sweep --out runs/sweep/plots

If you run it without installation from the repo root, it will add ./src to PYTHONPATH automatically.
"""

from __future__ import annotations

import argparse
import asyncio
import time
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from llmbench.analysis import summarize
from llmbench.config import load_benchmark_config
from llmbench.results import ResultsFile, save_results
from llmbench.runner import run_with_progress
from llmbench.types import BenchmarkSpec, ChatMessage, RunMetadata


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None)
    ap.add_argument("--out-dir", default="runs/sweep")
    ap.add_argument("--concurrency", nargs="+", type=int, default=[1, 2, 4, 8])
    ap.add_argument("--n-requests", type=int, default=None)
    ap.add_argument("--max-tokens", type=int, default=256)
    ap.add_argument("--message", default="Write a short paragraph about the history of computing.")
    ap.add_argument("--streaming", action="store_true")
    args = ap.parse_args()

    bench = load_benchmark_config(args.config)
    n_requests = args.n_requests or bench.requests
    endpoints = bench.endpoints()
    spec = BenchmarkSpec(
        messages=(ChatMessage(role="user", content=args.message),),
        max_tokens=args.max_tokens,
        stream=args.streaming,
    )
    out_dir = Path(args.out_dir)

    for c in args.concurrency:
        print(f"Concurrency {c}...")
        results = asyncio.run(
            run_with_progress(endpoints, spec, n_requests, c, timeout_s=bench.timeout_s)
        )
        rf = ResultsFile(
            metadata=RunMetadata(
                message=args.message,
                requests=n_requests,
                concurrency=c,
                max_tokens=args.max_tokens,
                streaming=args.streaming,
                endpoints=[e.name for e in endpoints],
            ),
            summaries=summarize(results),
            results=results,
        )
        rid = time.strftime("%Y%m%d_%H%M%S")
        save_results(out_dir / f"c{c}_{rid}.yaml", rf)

    print("Done.")


if __name__ == "__main__":
    main()
