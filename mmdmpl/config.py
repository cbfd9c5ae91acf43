#config.py
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

COMBINE_POLICIES = ("compose", "override", "error")


def _positive_int(v: Any) -> int:
    n = int(v)
    if n <= 0:
        raise ValueError(f"expected a positive integer, got {v!r}")
    return n


def _non_negative_int(v: Any) -> int:
    n = int(v)
    if n < 0:
        raise ValueError(f"expected a non-negative integer, got {v!r}")
    return n


def _positive_float(v: Any) -> float:
    f = float(v)
    if not f > 0.0:
        raise ValueError(f"expected a positive number, got {v!r}")
    return f


def _policy(v: Any) -> str:
    s = str(v).lower()
    if s not in COMBINE_POLICIES:
        raise ValueError(f"combine_policy must be one of {', '.join(COMBINE_POLICIES)}, got {v!r}")
    return s


CONFIG_FIELDS = [
    ("fps", _positive_int, 60),                    # VMD frames per second
    ("decompile_tolerance", _positive_float, 1e-4),
    ("max_iterations", _positive_int, 200),
    ("random_seed", int, 0),                       # null -> fresh entropy per call
    ("extra_random_starts", _non_negative_int, 0),
    ("workers", _positive_int, 1),
    ("combine_policy", _policy, "compose"),
    ("sequence_gap_frames", _positive_int, 1),
    ("model_name", str, ""),
    ("log_path", Path, lambda: Path("logs/mmdmpl.log")),
]


@dataclass(frozen=True)
class CompilerConfig:
    fps: int
    decompile_tolerance: float
    max_iterations: int
    random_seed: Optional[int]
    extra_random_starts: int
    workers: int
    combine_policy: str
    sequence_gap_frames: int
    model_name: str
    log_path: Path


def config_from_dict(raw: dict[str, Any]) -> CompilerConfig:
    values = {}
    for entry in CONFIG_FIELDS:
        key = entry[0]
        cast = entry[1]
        default = entry[2] if len(entry) > 2 else None

        if key in raw:
            value = raw[key]
        else:
            value = default() if callable(default) else default

        if value is not None and cast is not None:
            try:
                value = cast(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid config value for '{key}': {e}") from e

        values[key] = value

    return CompilerConfig(**values)


def default_config() -> CompilerConfig:
    return config_from_dict({})


def load_config(config_path: Path) -> CompilerConfig:
    raw = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a JSON object: {config_path}")
    return config_from_dict(raw)
