# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import logging
import sys
from pathlib import Path

from .analysis import summaries_frame, summarize
from .config import load_benchmark_config, mask_api_key, validate_config, write_sample_config
from .display import format_connection_results, format_summaries
from .loadgen import load_messages
from .results import ResultsFile, load_results, save_results
from .runner import run_with_progress, test_connections
from .types import BenchmarkSpec, ChatMessage, RunMetadata


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="llmbench", description="Benchmark OpenAI-compatible LLM endpoints")
    p.add_argument("--config", default=None, help="Config file (default: ./llmbench.yaml, ~/.config/llmbench/llmbench.yaml)")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    bp = sub.add_parser("benchmark", help="Benchmark all configured endpoints")
    bp.add_argument("-m", "--message", default="Hello, how are you?", help="Message to send")
    bp.add_argument("--messages-file", default=None, help="JSONL conversation to send instead of --message")
    bp.add_argument("-r", "--requests", type=_positive_int, default=None, help="Requests per endpoint (overrides config)")
    bp.add_argument("-c", "--concurrent", type=_positive_int, default=None, help="Concurrent requests per endpoint (overrides config)")
    bp.add_argument("--max-tokens", type=int, default=100, help="Maximum tokens in each response")
    bp.add_argument("-s", "--streaming", action="store_true", help="Stream responses and measure TTFT/throughput")
    bp.add_argument("--all-models", action="store_true", help="Benchmark every configured model, not only the first")
    bp.add_argument("--skip-probe", action="store_true", help="Skip the connectivity check before the run")
    bp.add_argument("--json", action="store_true", help="Print results as JSON")
    bp.add_argument("--save", default=None, help="Save results to a YAML (.yaml) or JSON file")
    bp.add_argument("--csv", default=None, help="Write the summary table to CSV")
    bp.add_argument("--charts", default=None, help="Directory for TTFT/throughput bar charts")

    sub.add_parser("test", help="Test connectivity to configured endpoints")

    cp = sub.add_parser("config", help="Manage configuration")
    csub = cp.add_subparsers(dest="config_cmd", required=True)
    ip = csub.add_parser("init", help="Write a sample configuration file")
    ip.add_argument("path", nargs="?", default="llmbench.yaml")
    csub.add_parser("show", help="Show the current configuration")
    csub.add_parser("validate", help="Validate the configuration")

    dp = sub.add_parser("display", help="Display saved benchmark results")
    dp.add_argument("file")
    dp.add_argument("--json", action="store_true")
    dp.add_argument("--csv", default=None)
    dp.add_argument("--charts", default=None)
    return p


def _emit(results_file: ResultsFile, args: argparse.Namespace, info) -> None:
    if args.csv:
        summaries_frame(results_file.summaries).to_csv(args.csv, index=False)
        info(f"Summary table written to {args.csv}")
    if args.charts:
        from .charts import write_charts

        written = write_charts(results_file.summaries, args.charts)
        if written:
            info("Charts written: " + ", ".join(str(w) for w in written))
        else:
            info("No streaming data available for charts")
    if args.json:
        print(json.dumps(results_file.to_json(), indent=2))
    else:
        print(format_summaries(results_file.summaries))


def cmd_benchmark(args: argparse.Namespace) -> int:
    bench = load_benchmark_config(args.config)
    if args.requests is not None:
        bench.requests = args.requests
    if args.concurrent is not None:
        bench.concurrency = args.concurrent

    info = functools.partial(print, file=sys.stderr) if args.json else print

    if args.messages_file:
        messages = load_messages(args.messages_file)
    else:
        messages = [ChatMessage(role="user", content=args.message)]
    spec = BenchmarkSpec(messages=tuple(messages), max_tokens=args.max_tokens, stream=args.streaming)
    endpoints = bench.endpoints(all_models=args.all_models)
    timeout_s = bench.timeout_s

    info("Starting benchmark...")
    info(f"Message: {messages[-1].content}")
    info(f"Requests per endpoint: {bench.requests}")
    info(f"Concurrency: {bench.concurrency}")
    info("")

    if not args.skip_probe:
        info("Testing connections...")
        conn = asyncio.run(test_connections(endpoints, timeout_s=timeout_s))
        for line in format_connection_results(conn):
            info(line)
        failed = sum(1 for err in conn.values() if err)
        if failed:
            info(f"\n{failed} endpoint(s) failed the connection test")
        info("")

    info("Running benchmark...")
    results = asyncio.run(
        run_with_progress(
            endpoints,
            spec,
            bench.requests,
            bench.concurrency,
            timeout_s=timeout_s,
            show_progress=not args.json,
        )
    )

    results_file = ResultsFile(
        metadata=RunMetadata(
            message=messages[-1].content,
            requests=bench.requests,
            concurrency=bench.concurrency,
            max_tokens=args.max_tokens,
            streaming=args.streaming,
            endpoints=[e.name for e in endpoints],
        ),
        summaries=summarize(results),
        results=results,
    )
    if args.save:
        save_results(args.save, results_file)
        info(f"Results saved to {args.save}")
    _emit(results_file, args, info)
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    bench = load_benchmark_config(args.config)
    print("Testing connections to configured endpoints...\n")
    results = asyncio.run(test_connections(bench.endpoints(), timeout_s=bench.timeout_s))
    for line in format_connection_results(results):
        print(line)

    ok = sum(1 for err in results.values() if err is None)
    print(f"\nResults: {ok}/{len(results)} endpoints connected successfully")
    if ok != len(results):
        print("Some endpoints failed the connection test. Check your configuration.")
        return 1
    print("All endpoints are ready for benchmarking.")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    if args.config_cmd == "init":
        path = write_sample_config(args.path)
        print(f"Configuration file created at {path}")
        print("Edit it to add your API keys and endpoints.")
        return 0

    bench = load_benchmark_config(args.config, validate=False)
    if args.config_cmd == "validate":
        validate_config(bench)
        print("Configuration is valid")
        print(f"Found {len(bench.providers)} provider(s) configured")
        return 0

    print("Current configuration:")
    print(f"Requests: {bench.requests}")
    print(f"Concurrency: {bench.concurrency}")
    print(f"Timeout: {bench.timeout}")
    print(f"Providers: {len(bench.providers)}")
    for i, p in enumerate(bench.providers, start=1):
        print(f"  {i}. {p.name}")
        print(f"     Base URL: {p.base_url}")
        print(f"     Models: {', '.join(p.models) if p.models else 'none configured'}")
        print(f"     API Key: {mask_api_key(p.api_key)}")
    return 0


def cmd_display(args: argparse.Namespace) -> int:
    results_file = load_results(args.file)
    info = functools.partial(print, file=sys.stderr) if args.json else print
    meta = results_file.metadata
    info(f"Loaded results from: {Path(args.file)}")
    info(f"Benchmark run time: {results_file.timestamp}")
    info(f"Message: {meta.message}")
    info(f"Requests: {meta.requests}, Concurrency: {meta.concurrency}, Max Tokens: {meta.max_tokens}")
    if meta.streaming:
        info("Streaming: enabled")
    info("")
    _emit(results_file, args, info)
    return 0


COMMANDS = {
    "benchmark": cmd_benchmark,
    "test": cmd_test,
    "config": cmd_config,
    "display": cmd_display,
}


def main() -> None:
    p = build_parser()
    args = p.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        code = COMMANDS[args.cmd](args)
    except (OSError, ValueError) as e:  # includes ConfigError
        p.exit(1, f"Error: {e}\n")
    sys.exit(code)


if __name__ == "__main__":
    main()
