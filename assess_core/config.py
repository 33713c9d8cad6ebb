from __future__ import annotations
import os, json, pathlib, random
from typing import Callable, TypeVar

N = TypeVar("N", int, float)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_num(name: str, default: N, cast: Callable[[str], N]) -> N:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    return _env_num(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_num(name, default, float)


# Session clock
DEFAULT_TIME_LIMIT_SEC: int = _env_int("DEFAULT_TIME_LIMIT_SEC", 3600)

# Difficulty ladder
WINDOW_SIZE: int = _env_int("WINDOW_SIZE", 3)
ESCALATE_AT: float = _env_float("ESCALATE_AT", 0.8)
DEESCALATE_AT: float = _env_float("DEESCALATE_AT", 0.4)

# Question pool
RESERVE_PER_TIER: int = _env_int("RESERVE_PER_TIER", 2)
NUMERIC_TOLERANCE: float = _env_float("NUMERIC_TOLERANCE", 1e-6)

# Generation; placeholder content stays off unless ops turn it on
GENERATOR_TIMEOUT_SEC: float = _env_float("GENERATOR_TIMEOUT_SEC", 30.0)
NARRATIVE_TIMEOUT_SEC: float = _env_float("NARRATIVE_TIMEOUT_SEC", 20.0)
FALLBACK_CONTENT_ENABLED: bool = _env_bool("FALLBACK_CONTENT_ENABLED", False)
GENERATED_ESTIMATED_TIME_SEC: int = 120

# Result analysis
MIN_SAMPLE: int = _env_int("MIN_SAMPLE", 3)
WEAKNESS_BELOW: float = _env_float("WEAKNESS_BELOW", 0.60)
STRENGTH_AT: float = _env_float("STRENGTH_AT", 0.80)
RECOMMENDATIONS_MIN: int = 3
RECOMMENDATIONS_MAX: int = 5
SLOW_FACTOR: float = _env_float("SLOW_FACTOR", 1.5)

# API
SWEEP_INTERVAL_SEC: int = _env_int("SWEEP_INTERVAL_SEC", 0)
AUDIT_EXPORT_ENABLED: bool = _env_bool("AUDIT_EXPORT_ENABLED", True)


def load_config() -> dict:
    """Runtime switches: optional json file (ASSESS_CONFIG), environment wins."""
    cfg: dict = {}
    p = pathlib.Path(os.getenv("ASSESS_CONFIG", "config.json"))
    if p.exists():
        try:
            cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            cfg = {}
    if os.getenv("QUESTION_BANK_PATH"):
        cfg["QUESTION_BANK_PATH"] = os.getenv("QUESTION_BANK_PATH")
    if os.getenv("USE_LLM_NARRATIVE"):
        cfg["USE_LLM_NARRATIVE"] = _env_bool("USE_LLM_NARRATIVE", False)
    seed = _env_num("SEED", None, int)
    if seed is not None:
        cfg["SEED"] = seed
    return cfg


def seed_rng(cfg: dict) -> random.Random:
    s = cfg.get("SEED")
    return random.Random(int(s)) if s is not None else random.Random()
