# vitalplate_backend/app/config/paths.py
from __future__ import annotations

"""
Central path resolution for VitalPlate.

Env overrides:
    DATA_DIR
    VITALPLATE_RULES_DIR
    VITALPLATE_VITALS_PATH
    VITALPLATE_CATALOG_PATH

Defaults:
    ./data
    <repo_root>/vitalplate_backend/app/rules
    <DATA_DIR>/wearable_stream.json
    <DATA_DIR>/food_catalog.json

DATA_DIR is read on every call so tests can point it at a tmp tree.
"""

import os
from pathlib import Path

# ──────────────────────────────────────────────────────────────────────────────
_THIS_FILE = Path(__file__).resolve()

APP_ROOT: Path = _THIS_FILE.parents[1]
REPO_ROOT: Path = APP_ROOT.parents[1]

def _clean_env(value: str | None) -> str | None:
    if value is None:
        return None
    v = value.strip().strip('"').strip("'")
    return v or None

def _env_path(name: str) -> Path | None:
    raw = _clean_env(os.getenv(name))
    if not raw:
        return None
    return Path(raw).expanduser().resolve()

_default_rules = APP_ROOT / "rules"

# ── Getters
def get_data_dir() -> Path:
    return (_env_path("DATA_DIR") or Path("./data")).resolve()

def get_rules_dir() -> Path:
    return (_env_path("VITALPLATE_RULES_DIR") or _default_rules).resolve()

def get_vitals_path() -> Path:
    return _env_path("VITALPLATE_VITALS_PATH") or get_data_dir() / "wearable_stream.json"

def get_catalog_path() -> Path:
    return _env_path("VITALPLATE_CATALOG_PATH") or get_data_dir() / "food_catalog.json"

def get_state_dir() -> Path:
    """Directory holding the preference model and bandit blobs."""
    return ensure_data_dir_exists("state")

# ── Resolvers
def resolve_rules_file(name: str) -> Path:
    """Return absolute path under the rules dir for a given filename."""
    return get_rules_dir() / name

def ensure_data_dir_exists(*parts: str) -> Path:
    """
    Ensure DATA_DIR (and optional subpaths) exist.
    Examples:
        ensure_data_dir_exists() -> <DATA_DIR>
        ensure_data_dir_exists("state") -> <DATA_DIR>/state
    """
    p = get_data_dir().joinpath(*parts)
    p.mkdir(parents=True, exist_ok=True)
    return p

__all__ = [
    "REPO_ROOT", "APP_ROOT",
    "get_data_dir", "get_rules_dir", "get_vitals_path", "get_catalog_path", "get_state_dir",
    "resolve_rules_file", "ensure_data_dir_exists",
]
