# vitalplate_backend/app/config/manifest.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Optional

from .paths import resolve_rules_file

# ---- Ranking knobs ----
# Read at call time (not import time) so tests can monkeypatch the env.

def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default

def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip() not in ("", "0", "false", "False", "off")

@dataclass(frozen=True)
class RankingSettings:
    min_picks: int = 5
    max_returned: int = 12
    remote_min_results: int = 5
    ranker_url: Optional[str] = None
    ranker_token: Optional[str] = None
    ranker_timeout_s: float = 8.0
    jitter: bool = True
    simulate_vitals: bool = False

def get_ranking_settings() -> RankingSettings:
    min_picks = max(1, _env_int("VITALPLATE_MIN_PICKS", 5))
    return RankingSettings(
        min_picks=min_picks,
        max_returned=max(min_picks, _env_int("VITALPLATE_MAX_RETURNED", 12)),
        remote_min_results=max(1, _env_int("VITALPLATE_REMOTE_MIN_RESULTS", 5)),
        ranker_url=(os.getenv("VITALPLATE_RANKER_URL") or "").strip() or None,
        ranker_token=(os.getenv("VITALPLATE_RANKER_TOKEN") or "").strip() or None,
        ranker_timeout_s=max(0.1, _env_float("VITALPLATE_RANKER_TIMEOUT_S", 8.0)),
        jitter=_env_flag("VITALPLATE_JITTER", True),
        simulate_vitals=_env_flag("VITALPLATE_SIMULATE_VITALS", False),
    )

# ---- Rulebook validation manifest ----
RULES_REQUIRED: List[str] = [
    "lexicons.yaml",
]

def validate_manifest() -> Dict[str, object]:
    missing = [name for name in RULES_REQUIRED if not resolve_rules_file(name).exists()]
    return {
        "status": "ok" if not missing else "missing_required",
        "required": RULES_REQUIRED,
        "missing_required": missing,
    }

__all__ = ["RankingSettings", "get_ranking_settings", "validate_manifest"]
