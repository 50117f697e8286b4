"""Unit tests for result aggregation."""

import pytest

from llmbench.analysis import summaries_frame, summarize, summarize_endpoint
from llmbench.types import CompletionResult, FailedResult, StreamResult


def ok(t, tokens=10, name="alpha"):
    return CompletionResult(endpoint=name, model="m", response_time_s=t, tokens_used=tokens)


def failed(t, name="alpha", streaming=False):
    return FailedResult(endpoint=name, model="m", response_time_s=t, error="timeout", is_streaming=streaming)


def stream(t, ttft=0.05, duration=0.5, tokens=100, throughput=None):
    if throughput is None and duration and duration >= 0.001 and tokens > 0:
        throughput = tokens / duration
    return StreamResult(
        endpoint="alpha",
        model="m",
        response_time_s=t,
        tokens_used=tokens + 12,
        streaming_tokens=tokens,
        time_to_first_token_s=ttft,
        streaming_duration_s=duration,
        token_throughput=throughput,
    )


class TestSummarize:
    """Tests for summarize and summarize_endpoint."""

    def test_counts_and_error_rate(self):
        """error_rate = 100 * failed / total."""
        s = summarize_endpoint("alpha", [ok(0.1), failed(0.2), ok(0.3), failed(0.4)])
        assert s.total_requests == 4
        assert s.successful_requests == 2
        assert s.failed_requests == 2
        assert s.error_rate == 50.0

    def test_empty_endpoint(self):
        """No records: zero counts and zero error rate."""
        s = summarize_endpoint("alpha", [])
        assert s.total_requests == 0
        assert s.error_rate == 0
        assert s.min_response_time_s == 0.0
        assert s.streaming is None

    def test_latency_covers_failures(self):
        """Failed requests still contribute latency."""
        s = summarize_endpoint("alpha", [ok(0.2), failed(0.9), ok(0.1)])
        assert s.min_response_time_s == 0.1
        assert s.max_response_time_s == 0.9
        assert s.avg_response_time_s == pytest.approx(0.4)

    def test_minimum_seeded_from_first_record(self):
        """A near-zero first latency is the true minimum, not masked by a default."""
        s = summarize_endpoint("alpha", [ok(0.0001), ok(0.5), ok(0.3)])
        assert s.min_response_time_s == 0.0001
        assert s.max_response_time_s == 0.5

    def test_all_values_large(self):
        """Minimum is not pinned to zero when every latency is large."""
        s = summarize_endpoint("alpha", [ok(2.0), ok(3.0)])
        assert s.min_response_time_s == 2.0

    def test_tokens_only_from_successes(self):
        """Failed requests never add tokens; streams count their output tokens."""
        s = summarize_endpoint("alpha", [ok(0.1, tokens=7), failed(0.1), stream(0.6, tokens=100)])
        assert s.total_tokens == 107

    def test_streaming_stats(self):
        """50ms TTFT, 500ms stream, 100 tokens -> 200 tokens/s."""
        s = summarize_endpoint("alpha", [stream(0.55), stream(0.55, ttft=0.15, duration=0.25, tokens=100)])
        st = s.streaming
        assert st is not None
        assert st.min_time_to_first_token_s == 0.05
        assert st.max_time_to_first_token_s == 0.15
        assert st.avg_time_to_first_token_s == pytest.approx(0.1)
        assert st.min_token_throughput == pytest.approx(200.0)
        assert st.max_token_throughput == pytest.approx(400.0)
        assert st.avg_token_throughput == pytest.approx(300.0)

    def test_no_streaming_stats_for_plain_requests(self):
        """Non-streaming runs report no streaming section at all."""
        s = summarize_endpoint("alpha", [ok(0.1), ok(0.2)])
        assert s.streaming is None

    def test_failed_streams_are_ignored(self):
        """Only successful streams contribute streaming statistics."""
        s = summarize_endpoint("alpha", [failed(0.1, streaming=True)])
        assert s.streaming is None

    def test_throughput_omitted_for_short_streams(self):
        """Streams under 1ms have no throughput, so it is reported as missing rather than zero."""
        s = summarize_endpoint("alpha", [stream(0.05, ttft=0.05, duration=0.0005), stream(0.06, ttft=0.06, duration=0.0)])
        st = s.streaming
        assert st is not None
        assert st.avg_time_to_first_token_s == pytest.approx(0.055)
        assert st.avg_token_throughput is None
        assert st.min_token_throughput is None
        assert st.max_token_throughput is None

    def test_idempotent(self):
        """Summarizing the same results twice gives identical values."""
        results = {
            "alpha": [ok(0.1), failed(0.3), stream(0.5)],
            "beta": [ok(0.2, name="beta")],
        }
        assert summarize(results) == summarize(results)

    def test_one_summary_per_endpoint(self):
        results = {"alpha": [ok(0.1)], "beta": [failed(0.2, name="beta")]}
        summaries = summarize(results)
        assert set(summaries) == {"alpha", "beta"}
        assert summaries["beta"].error_rate == 100.0
        assert summaries["alpha"].model == "m"

    def test_percentiles(self):
        s = summarize_endpoint("alpha", [ok(t / 10) for t in range(1, 11)])
        assert s.p50_response_time_s == pytest.approx(0.55)
        assert s.p95_response_time_s <= s.max_response_time_s


class TestSummariesFrame:
    """Tests for the tabular export."""

    def test_rows_sorted_and_flattened(self):
        summaries = summarize({"beta": [ok(0.2, name="beta")], "alpha": [stream(0.55)]})
        df = summaries_frame(summaries)
        assert list(df["endpoint"]) == ["alpha", "beta"]
        assert df.loc[0, "avg_token_throughput"] == pytest.approx(200.0)
        assert df.loc[1, "total_requests"] == 1
