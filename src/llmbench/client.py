# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from .tokens import TokenCounter
from .types import (
    BenchmarkSpec,
    ChatMessage,
    CompletionResult,
    Endpoint,
    FailedResult,
    StreamResult,
    TimedResult,
)

logger = logging.getLogger(__name__)

CONNECTION_TEST_PROMPT = "Hello, this is a connection test. Please respond with 'OK'."
CONNECTION_TEST_MAX_TOKENS = 20

# Streams shorter than this have no meaningful throughput.
MIN_STREAMING_DURATION_S = 0.001


class ResponseError(Exception):
    """Non-2xx status or a payload we could not interpret."""


class EndpointClient:
    """Sends timed chat-completion requests to one endpoint.

    Implementations never raise for per-request problems: every call returns a
    TimedResult, failed or not.
    """

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint

    async def __aenter__(self) -> "EndpointClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        pass

    async def send_once(self, spec: BenchmarkSpec) -> TimedResult:
        raise NotImplementedError

    async def send_stream(self, spec: BenchmarkSpec) -> TimedResult:
        raise NotImplementedError

    async def send(self, spec: BenchmarkSpec) -> TimedResult:
        if spec.stream:
            return await self.send_stream(spec)
        return await self.send_once(spec)

    async def test_connection(self) -> Optional[str]:
        """Send one small request with the first model. Returns None if reachable."""
        if not self.endpoint.models:
            return f"no models configured for endpoint {self.endpoint.name}"
        spec = BenchmarkSpec(
            messages=(ChatMessage(role="user", content=CONNECTION_TEST_PROMPT),),
            model=self.endpoint.models[0],
            max_tokens=CONNECTION_TEST_MAX_TOKENS,
        )
        result = await self.send_once(spec)
        if not result.success:
            return f"connection test failed: {result.error}"
        return None


def stream_metrics(
    start: float, first_token: Optional[float], end: float, output_tokens: int
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """Return (time_to_first_token_s, streaming_duration_s, token_throughput)."""
    if first_token is None:
        return None, None, None
    ttft = first_token - start
    duration = end - first_token
    throughput = None
    if duration >= MIN_STREAMING_DURATION_S and output_tokens > 0:
        throughput = output_tokens / duration
    return ttft, duration, throughput


def _usage_count(usage: Any, key: str) -> int:
    if not usage:
        return 0
    if not isinstance(usage, dict):
        raise ResponseError(f"malformed response: 'usage' is {type(usage).__name__}, not an object")
    value = usage.get(key) or 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ResponseError(f"malformed response: usage.{key} is not a number: {value!r}")
    return int(value)


def _first_choice(choices: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(choices, list):
        raise ResponseError("malformed response: missing 'choices'")
    if not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        raise ResponseError(f"malformed response: choice is {type(choice).__name__}, not an object")
    return choice


def _field(obj: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = obj.get(key) or {}
    if not isinstance(value, dict):
        raise ResponseError(f"malformed response: '{key}' is {type(value).__name__}, not an object")
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ResponseError(f"malformed response: content is {type(value).__name__}, not a string")
    return value


def _message_content(data: Any) -> str:
    if not isinstance(data, dict):
        raise ResponseError(f"malformed response: expected a JSON object, got {type(data).__name__}")
    if "error" in data:
        raise ResponseError(f"provider error: {data['error']}")
    choice = _first_choice(data.get("choices"))
    if choice is None:
        return ""
    return _text(_field(choice, "message").get("content"))


class OpenAIClient(EndpointClient):
    """aiohttp client for OpenAI-compatible /chat/completions endpoints."""

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        timeout_s: float = 30.0,
        token_counter: Optional[TokenCounter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(endpoint)
        self.url = endpoint.base_url.rstrip("/") + "/chat/completions"
        self.timeout_s = timeout_s
        self.token_counter = token_counter
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=0, ttl_dns_cache=60)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.endpoint.api_key}",
            "Content-Type": "application/json",
        }

    async def _raise_for_status(self, resp: aiohttp.ClientResponse) -> None:
        if resp.status < 400:
            return
        body = (await resp.text()).strip()
        if len(body) > 300:
            body = body[:300] + "..."
        reason = f" {resp.reason}" if resp.reason else ""
        raise ResponseError(f"HTTP {resp.status}{reason}: {body}")

    def _failed(self, spec: BenchmarkSpec, t0: float, exc: BaseException, *, streaming: bool) -> FailedResult:
        elapsed = time.perf_counter() - t0
        if isinstance(exc, asyncio.TimeoutError):
            error = f"request timed out after {self.timeout_s:g}s"
        else:
            error = str(exc) or type(exc).__name__
        logger.debug("%s: request failed after %.3fs: %s", self.endpoint.name, elapsed, error)
        return FailedResult(
            endpoint=self.endpoint.name,
            model=spec.model,
            response_time_s=elapsed,
            error=error,
            is_streaming=streaming,
        )

    def _input_tokens(self, spec: BenchmarkSpec) -> int:
        assert self.token_counter is not None
        return self.token_counter.count_chat_tokens(spec.messages, spec.model)

    def stream_payload(self, spec: BenchmarkSpec) -> Dict[str, Any]:
        payload = spec.payload()
        payload["stream"] = True
        if self.token_counter is None:
            # OpenAI only sends a final usage chunk when asked for it.
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def send_once(self, spec: BenchmarkSpec) -> TimedResult:
        payload = spec.payload()
        payload.pop("stream", None)
        t0 = time.perf_counter()
        try:
            async with self.session.post(
                self.url, json=payload, headers=self._headers(), timeout=self._timeout
            ) as resp:
                await self._raise_for_status(resp)
                data = await resp.json(content_type=None)
            elapsed = time.perf_counter() - t0
            text = _message_content(data)
            if self.token_counter is not None:
                tokens = self._input_tokens(spec) + self.token_counter.count_tokens(text, spec.model)
            else:
                tokens = _usage_count(data.get("usage"), "total_tokens")
        except (aiohttp.ClientError, asyncio.TimeoutError, ResponseError) as e:
            return self._failed(spec, t0, e, streaming=False)
        except ValueError as e:
            return self._failed(spec, t0, ResponseError(f"malformed response: {e}"), streaming=False)

        return CompletionResult(
            endpoint=self.endpoint.name,
            model=spec.model,
            response_time_s=elapsed,
            tokens_used=tokens,
            response=text,
        )

    async def send_stream(self, spec: BenchmarkSpec) -> TimedResult:
        payload = self.stream_payload(spec)
        parts: List[str] = []
        usage: Any = None
        first_token: Optional[float] = None
        t0 = time.perf_counter()
        try:
            async with self.session.post(
                self.url, json=payload, headers=self._headers(), timeout=self._timeout
            ) as resp:
                await self._raise_for_status(resp)
                async for raw in resp.content:
                    line = raw.decode("utf-8", errors="replace").strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    chunk = json.loads(data)
                    if not isinstance(chunk, dict):
                        raise ResponseError("malformed stream chunk: expected a JSON object")
                    if "error" in chunk:
                        raise ResponseError(f"provider error: {chunk['error']}")
                    if chunk.get("usage"):
                        usage = chunk["usage"]
                    choice = _first_choice(chunk.get("choices") or [])
                    if choice is None:
                        continue
                    content = _text(_field(choice, "delta").get("content"))
                    if content:
                        if first_token is None:
                            first_token = time.perf_counter()
                        parts.append(content)
            end = time.perf_counter()

            text = "".join(parts)
            if self.token_counter is not None:
                output_tokens = self.token_counter.count_tokens(text, spec.model)
                tokens = self._input_tokens(spec) + output_tokens
            else:
                output_tokens = _usage_count(usage, "completion_tokens")
                tokens = _usage_count(usage, "total_tokens")
        except (aiohttp.ClientError, asyncio.TimeoutError, ResponseError) as e:
            return self._failed(spec, t0, e, streaming=True)
        except ValueError as e:
            return self._failed(spec, t0, ResponseError(f"malformed stream chunk: {e}"), streaming=True)

        ttft, duration, throughput = stream_metrics(t0, first_token, end, output_tokens)
        return StreamResult(
            endpoint=self.endpoint.name,
            model=spec.model,
            response_time_s=end - t0,
            tokens_used=tokens,
            response=text,
            streaming_tokens=output_tokens,
            time_to_first_token_s=ttft,
            streaming_duration_s=duration,
            token_throughput=throughput,
        )
