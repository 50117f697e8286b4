# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Endpoint:
    """An OpenAI-compatible chat-completions provider."""

    name: str
    base_url: str
    api_key: str
    models: Tuple[str, ...] = ()

    @property
    def model(self) -> str:
        if not self.models:
            raise ValueError(f"endpoint {self.name!r} has no models configured")
        return self.models[0]

    def for_model(self, model: str) -> "Endpoint":
        return replace(self, name=f"{self.name}/{model}", models=(model,))


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass(frozen=True)
class BenchmarkSpec:
    """The request sent to every endpoint; `model` is overridden per endpoint."""

    messages: Tuple[ChatMessage, ...]
    model: str = ""
    max_tokens: int = 0
    stream: bool = False

    def with_model(self, model: str) -> "BenchmarkSpec":
        return replace(self, model=model)

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
        }
        if self.max_tokens > 0:
            body["max_tokens"] = self.max_tokens
        if self.stream:
            body["stream"] = True
        return body


# Per-request outcomes. Exactly one of these is produced per dispatched request.


@dataclass(frozen=True)
class CompletionResult:
    """Successful non-streaming request."""

    endpoint: str
    model: str
    response_time_s: float
    tokens_used: int = 0
    response: str = ""

    kind = "completion"
    success = True
    is_streaming = False


@dataclass(frozen=True)
class StreamResult:
    """Successful streaming request.

    `token_throughput` is None when the stream was too short (< 1 ms between
    first token and end of stream) or produced no output tokens.
    """

    endpoint: str
    model: str
    response_time_s: float
    tokens_used: int = 0
    response: str = ""
    streaming_tokens: int = 0
    time_to_first_token_s: Optional[float] = None
    streaming_duration_s: Optional[float] = None
    token_throughput: Optional[float] = None

    kind = "stream"
    success = True
    is_streaming = True


@dataclass(frozen=True)
class FailedResult:
    endpoint: str
    model: str
    response_time_s: float
    error: str
    is_streaming: bool = False

    kind = "failure"
    success = False


TimedResult = Union[CompletionResult, StreamResult, FailedResult]
ResultSet = Dict[str, List[TimedResult]]

_RESULT_KINDS = {cls.kind: cls for cls in (CompletionResult, StreamResult, FailedResult)}


def result_to_dict(result: TimedResult) -> Dict[str, Any]:
    d = asdict(result)
    d["kind"] = result.kind
    return d


def result_from_dict(d: Dict[str, Any]) -> TimedResult:
    d = dict(d)
    kind = d.pop("kind", None)
    if kind not in _RESULT_KINDS:
        raise ValueError(f"Unknown result kind: {kind!r}")
    return _RESULT_KINDS[kind](**d)


@dataclass(frozen=True)
class StreamingStats:
    """TTFT and throughput distribution over successful streaming requests."""

    avg_time_to_first_token_s: Optional[float] = None
    min_time_to_first_token_s: Optional[float] = None
    max_time_to_first_token_s: Optional[float] = None

    avg_token_throughput: Optional[float] = None
    min_token_throughput: Optional[float] = None
    max_token_throughput: Optional[float] = None


@dataclass(frozen=True)
class Summary:
    """Aggregated metrics for one endpoint."""

    endpoint: str
    model: str
    total_requests: int
    successful_requests: int
    failed_requests: int
    error_rate: float

    # Latency statistics (seconds), over every request
    avg_response_time_s: float = 0.0
    min_response_time_s: float = 0.0
    max_response_time_s: float = 0.0
    p50_response_time_s: float = 0.0
    p95_response_time_s: float = 0.0
    p99_response_time_s: float = 0.0

    total_tokens: int = 0

    streaming: Optional[StreamingStats] = None


def summary_from_dict(d: Dict[str, Any]) -> Summary:
    d = dict(d)
    streaming = d.pop("streaming", None)
    return Summary(**d, streaming=StreamingStats(**streaming) if streaming else None)


@dataclass(frozen=True)
class ProgressEvent:
    endpoint: str
    completed: int
    total: int

    @property
    def done(self) -> bool:
        return self.completed >= self.total


@dataclass
class RunMetadata:
    message: str = ""
    requests: int = 0
    concurrency: int = 0
    max_tokens: int = 0
    streaming: bool = False
    endpoints: List[str] = field(default_factory=list)
