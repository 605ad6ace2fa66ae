# vitalplate_backend/app/services/ranking/rules.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet

import yaml  # PyYAML

from vitalplate_backend.app.config.paths import resolve_rules_file

# -----------------------------------------------------------------------------
# Logger
# -----------------------------------------------------------------------------
log = logging.getLogger("vitalplate.rules")
if not log.handlers:
    handler = logging.StreamHandler()
    log.addHandler(handler)
    log.setLevel(logging.INFO)

_RULES_LEXICONS = "lexicons.yaml"

_DEFAULT_WEIGHTS: Dict[str, float] = {
    "diet_match": 30.0,
    "style_match": 15.0,
    "protein_match": 8.0,
    "per_keyword": 2.0,
    "seed_promotion": 100.0,
    "price_cap": 1000.0,
}

@dataclass(frozen=True)
class Rulebook:
    lexicons: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_WEIGHTS))
    tag_explanations: Dict[str, str] = field(default_factory=dict)

    def lexicon(self, name: str) -> FrozenSet[str]:
        return self.lexicons.get(name, frozenset())

    def weight(self, name: str) -> float:
        return float(self.weights.get(name, _DEFAULT_WEIGHTS.get(name, 0.0)))

# -----------------------------------------------------------------------------
# Internal IO helpers
# -----------------------------------------------------------------------------
def _load_yaml_from(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

def _parse(raw: Any) -> Rulebook:
    raw = raw if isinstance(raw, dict) else {}
    lex_raw = raw.get("lexicons") or {}
    lexicons = {
        str(name).lower(): frozenset(str(w).strip().lower() for w in (words or []) if str(w).strip())
        for name, words in lex_raw.items()
    }
    weights = dict(_DEFAULT_WEIGHTS)
    for k, v in (raw.get("weights") or {}).items():
        try:
            weights[str(k)] = float(v)
        except (TypeError, ValueError):
            log.warning(f"[rules] ignoring non-numeric weight {k}={v!r}")
    explanations = {str(k).lower(): str(v) for k, v in (raw.get("tag_explanations") or {}).items()}
    return Rulebook(lexicons=lexicons, weights=weights, tag_explanations=explanations)

# -----------------------------------------------------------------------------
# Public loader API
# -----------------------------------------------------------------------------
@lru_cache(maxsize=8)
def _load_rulebook(path: Path) -> Rulebook:
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found: {path}")
    book = _parse(_load_yaml_from(path))
    log.info(f"[rules] loaded {path.name} from {path} ({len(book.lexicons)} lexicons)")
    return book

def get_rulebook() -> Rulebook:
    """
    Returns the ranking rulebook (required). Cached per resolved path so a
    VITALPLATE_RULES_DIR override takes effect without a restart.
    """
    return _load_rulebook(resolve_rules_file(_RULES_LEXICONS))
