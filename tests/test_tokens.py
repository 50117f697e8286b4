"""Tests for the tiktoken-backed token counter, using a fake encoding."""

import pytest
import tiktoken

from llmbench import tokens
from llmbench.tokens import TokenCounter
from llmbench.types import ChatMessage


class _CharEncoding:
    """One token per character."""

    def __init__(self, name):
        self.name = name

    def encode(self, text, disallowed_special=()):
        return list(text)


@pytest.fixture
def fake_tiktoken(monkeypatch):
    def encoding_for_model(model):
        if model == "known":
            return _CharEncoding("known-enc")
        raise KeyError(model)

    monkeypatch.setattr(tiktoken, "get_encoding", _CharEncoding)
    monkeypatch.setattr(tiktoken, "encoding_for_model", encoding_for_model)


def test_count_tokens(fake_tiktoken):
    counter = TokenCounter()
    assert counter.count_tokens("hello") == 5
    assert counter.count_tokens("") == 0


def test_chat_overhead(fake_tiktoken):
    counter = TokenCounter()
    messages = [ChatMessage("system", "ab"), ChatMessage("user", "cde")]
    # (3 + 6 + 2) + (3 + 4 + 3) + 3
    assert counter.count_chat_tokens(messages) == 24


def test_unknown_model_falls_back_to_default(fake_tiktoken):
    counter = TokenCounter()
    assert counter.encoding_for("mistral-7b").name == tokens.DEFAULT_ENCODING
    assert counter.encoding_for("known").name == "known-enc"
    assert counter.encoding_for("").name == tokens.DEFAULT_ENCODING


def test_create_returns_none_when_encoding_unavailable(monkeypatch):
    def unavailable(name):
        raise OSError("offline")

    monkeypatch.setattr(tiktoken, "get_encoding", unavailable)
    assert TokenCounter.create() is None
