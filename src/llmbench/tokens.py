# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import tiktoken

from .types import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

# OpenAI chat format overhead: every message is wrapped in
# <|start|>{role}\n{content}<|end|>\n and every reply is primed with <|start|>assistant<|message|>.
TOKENS_PER_MESSAGE = 3
TOKENS_PER_REPLY = 3


class TokenCounter:
    """Estimate token counts with tiktoken.

    Models unknown to tiktoken (most non-OpenAI providers) fall back to cl100k_base,
    which is close enough for relative comparisons between endpoints.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING):
        self._default = tiktoken.get_encoding(encoding_name)
        self._by_model: Dict[str, tiktoken.Encoding] = {}

    @classmethod
    def create(cls) -> Optional["TokenCounter"]:
        """Build a counter, or return None when the encoding cannot be loaded.

        tiktoken downloads encoding files on first use, so this can fail on
        offline machines. Callers then fall back to provider-reported usage.
        """
        try:
            return cls()
        except Exception as e:  # network/cache errors surface as assorted exception types
            logger.warning("Token counter unavailable, falling back to reported usage: %s", e)
            return None

    def encoding_for(self, model: str = "") -> tiktoken.Encoding:
        if not model:
            return self._default
        enc = self._by_model.get(model)
        if enc is None:
            try:
                enc = tiktoken.encoding_for_model(model)
            except KeyError:
                enc = self._default
            self._by_model[model] = enc
        return enc

    def count_tokens(self, text: str, model: str = "") -> int:
        if not text:
            return 0
        return len(self.encoding_for(model).encode(text, disallowed_special=()))

    def count_chat_tokens(self, messages: Sequence[ChatMessage], model: str = "") -> int:
        enc = self.encoding_for(model)
        total = 0
        for m in messages:
            total += TOKENS_PER_MESSAGE
            total += len(enc.encode(m.role, disallowed_special=()))
            total += len(enc.encode(m.content, disallowed_special=()))
        return total + TOKENS_PER_REPLY
