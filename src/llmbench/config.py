# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York


from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .types import Endpoint

logger = logging.getLogger(__name__)

CONFIG_NAME = "llmbench.yaml"
ENV_PREFIX = "LLMBENCH_"


class ConfigError(ValueError):
    """Invalid or unreadable configuration."""


@dataclass
class ProviderConfig:
    name: str = ""
    base_url: str = ""
    api_key: str = ""
    models: List[str] = field(default_factory=list)

    def to_endpoint(self) -> Endpoint:
        return Endpoint(name=self.name, base_url=self.base_url, api_key=self.api_key, models=tuple(self.models))


@dataclass
class BenchmarkConfig:
    providers: List[ProviderConfig] = field(default_factory=list)
    concurrency: int = 1
    requests: int = 10
    timeout: str = "30s"   # Go-style duration, see parse_duration

    @property
    def timeout_s(self) -> float:
        return parse_duration(self.timeout)

    def endpoints(self, all_models: bool = False) -> List[Endpoint]:
        """Endpoints to benchmark; with all_models, one per (provider, model) pair."""
        out: List[Endpoint] = []
        for p in self.providers:
            ep = p.to_endpoint()
            if all_models and len(ep.models) > 1:
                out.extend(ep.for_model(m) for m in ep.models)
            else:
                out.append(ep)
        return out


_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_S = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Parse a duration such as '500ms', '30s' or '1m30s' into seconds."""
    s = str(text).strip()
    if not s:
        raise ConfigError("invalid timeout format: empty duration")
    if s == "0":
        return 0.0
    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_S[m.group(2)]
        pos = m.end()
    if pos != len(s):
        raise ConfigError(f"invalid timeout format: {text!r}")
    return total


def load_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def default_search_paths() -> List[Path]:
    return [
        Path.cwd() / CONFIG_NAME,
        Path.home() / ".config" / "llmbench" / CONFIG_NAME,
        Path("/etc/llmbench") / CONFIG_NAME,
    ]


def find_config(path: Optional[str | Path] = None) -> Optional[Path]:
    if path:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"config file not found: {p}")
        return p
    for p in default_search_paths():
        if p.exists():
            return p
    return None


def _provider(raw: Dict[str, Any], index: int) -> ProviderConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"provider {index}: expected a mapping, got {type(raw).__name__}")
    models = raw.get("models")
    if models is None:
        models = [raw["model"]] if raw.get("model") else []
    elif isinstance(models, str):
        models = [models]
    api_key = os.path.expandvars(str(raw.get("api_key") or ""))
    return ProviderConfig(
        name=str(raw.get("name") or ""),
        base_url=str(raw.get("base_url") or ""),
        api_key=api_key,
        models=[str(m) for m in models],
    )


def parse_config(cfg: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> BenchmarkConfig:
    env = os.environ if env is None else env
    section = dict(cfg.get("benchmark") or {})
    for key in ("concurrency", "requests", "timeout"):
        value = env.get(ENV_PREFIX + key.upper())
        if value:
            section[key] = value

    try:
        bench = BenchmarkConfig(
            providers=[_provider(p, i) for i, p in enumerate(section.get("providers") or [])],
            concurrency=int(section.get("concurrency", 1)),
            requests=int(section.get("requests", 10)),
            timeout=str(section.get("timeout", "30s")),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"failed to parse config: {e}") from e
    return bench


def validate_config(bench: BenchmarkConfig) -> None:
    if not bench.providers:
        raise ConfigError("at least one provider must be configured")

    seen = set()
    for i, p in enumerate(bench.providers):
        if not p.name:
            raise ConfigError(f"provider {i}: name is required")
        if p.name in seen:
            raise ConfigError(f"provider {p.name}: duplicate name")
        seen.add(p.name)
        if not p.base_url:
            raise ConfigError(f"provider {p.name}: base_url is required")
        if not p.api_key:
            raise ConfigError(f"provider {p.name}: api_key is required")
        if not p.models:
            raise ConfigError(f"provider {p.name}: at least one model is required")

    if bench.concurrency <= 0:
        raise ConfigError("concurrency must be greater than 0")
    if bench.requests <= 0:
        raise ConfigError("requests must be greater than 0")
    parse_duration(bench.timeout)


def load_benchmark_config(path: Optional[str | Path] = None, validate: bool = True) -> BenchmarkConfig:
    found = find_config(path)
    if found is None:
        logger.info("No config file found, using defaults")
        cfg: Dict[str, Any] = {}
    else:
        logger.debug("Loading config from %s", found)
        try:
            cfg = load_yaml(found)
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to read config file {found}: {e}") from e
    bench = parse_config(cfg)
    if validate:
        validate_config(bench)
    return bench


SAMPLE_CONFIG = """\
benchmark:
  providers:
    - name: openai
      base_url: https://api.openai.com/v1
      api_key: ${OPENAI_API_KEY}
      models:
        - gpt-4o-mini
    - name: local-vllm
      base_url: http://127.0.0.1:8000/v1
      api_key: EMPTY
      models:
        - mistralai/Mistral-7B-Instruct-v0.2
  concurrency: 2
  requests: 50
  timeout: 30s
"""


def write_sample_config(path: str | Path = CONFIG_NAME) -> Path:
    p = Path(path)
    if p.exists():
        raise ConfigError(f"configuration file already exists at {p}")
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(SAMPLE_CONFIG, encoding="utf-8")
    return p


def mask_api_key(api_key: str) -> str:
    if len(api_key) <= 8:
        return "***"
    return api_key[:4] + "..." + api_key[-4:]
