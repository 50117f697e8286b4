# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from .types import (
    ResultSet,
    RunMetadata,
    Summary,
    result_from_dict,
    result_to_dict,
    summary_from_dict,
)


@dataclass
class ResultsFile:
    """Everything a benchmark run produces: metadata, summaries and raw per-request results."""

    metadata: RunMetadata
    summaries: Dict[str, Summary]
    results: ResultSet
    timestamp: str = field(default_factory=lambda: time.strftime("%Y-%m-%d %H:%M:%S"))

    def to_json(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "metadata": asdict(self.metadata),
            "summaries": {name: asdict(s) for name, s in sorted(self.summaries.items())},
            "results": {name: [result_to_dict(r) for r in rs] for name, rs in sorted(self.results.items())},
        }

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "ResultsFile":
        return cls(
            timestamp=str(d.get("timestamp", "")),
            metadata=RunMetadata(**(d.get("metadata") or {})),
            summaries={name: summary_from_dict(s) for name, s in (d.get("summaries") or {}).items()},
            results={name: [result_from_dict(r) for r in rs] for name, rs in (d.get("results") or {}).items()},
        )


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def save_results(path: str | Path, results_file: ResultsFile) -> Path:
    """Write YAML for .yaml/.yml paths, JSON otherwise."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    obj = results_file.to_json()
    with path.open("w", encoding="utf-8") as f:
        if _is_yaml(path):
            yaml.safe_dump(obj, f, sort_keys=False, allow_unicode=True)
        else:
            json.dump(obj, f, indent=2)
    return path


def load_results(path: str | Path) -> ResultsFile:
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        obj = yaml.safe_load(f) if _is_yaml(path) else json.load(f)
    if not isinstance(obj, dict):
        raise ValueError(f"{path} does not contain a results document")
    return ResultsFile.from_json(obj)
