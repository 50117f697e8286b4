# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

"""Aggregate saved benchmark results under a directory and plot them per endpoint.

Usage
-----
python scripts/analyze_results.py --runs runs/sweep --out runs/sweep/plots

Reads every .yaml/.json file written by `llmbench benchmark --save` (or by
scripts/run_matrix.py). If you did not install the package, the script will
automatically add ./src to PYTHONPATH when run from the repo root.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import matplotlib.pyplot as plt

from llmbench.analysis import load_results_dir


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--runs", required=True, help="Directory containing saved results files")
    ap.add_argument("--out", required=True, help="Output directory for tables and figures")
    args = ap.parse_args()

    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)

    df = load_results_dir(args.runs)
    df.to_csv(out / "summary.csv", index=False)

    for metric, fname, ylabel in [
        ("avg_response_time_s", "avg_response_time_s.png", "Avg response time (s)"),
        ("p95_response_time_s", "p95_response_time_s.png", "P95 response time (s)"),
        ("error_rate", "error_rate_pct.png", "Error rate (%)"),
        ("avg_token_throughput", "throughput_tokens_per_s.png", "Throughput (tokens/s)"),
    ]:
        if df[metric].isna().all():
            continue
        plt.figure()
        for endpoint, g in df.groupby("endpoint"):
            g = g.sort_values("concurrency")
            plt.plot(g["concurrency"], g[metric], marker="o", label=endpoint)
        plt.xlabel("Concurrency")
        plt.ylabel(ylabel)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out / fname, dpi=200)
        plt.close()

    print(f"Wrote {out}")


if __name__ == "__main__":
    main()
