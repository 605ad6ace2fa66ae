# vitalplate_backend/app/services/data_stores/preferences.py
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable, Optional, Sequence

from vitalplate_backend.app.config.paths import get_state_dir
from vitalplate_backend.app.models.recommend import (
    WEIGHT_MAX, WEIGHT_MIN, BanditEntry, Item, PreferenceState,
)
from vitalplate_backend.app.utils.storage import read_json, write_json

log = logging.getLogger("vitalplate.preferences")

# What it stores (two independent JSON blobs under DATA_DIR/state):
# - preferenceModel.json : {tag: weight}               weight in [WEIGHT_MIN, WEIGHT_MAX]
# - banditStats.json     : {tag: {"shown": n, "success": m}}
# No schema version; unknown or garbled entries read back as defaults.
MODEL_BLOB = "preferenceModel.json"
BANDIT_BLOB = "banditStats.json"


def clamp(x: float, lo: float = WEIGHT_MIN, hi: float = WEIGHT_MAX) -> float:
    return max(lo, min(hi, x))


def _parse_model(raw: Any) -> Dict[str, float]:
    out: Dict[str, float] = {}
    if not isinstance(raw, dict):
        return out
    for tag, w in raw.items():
        try:
            out[str(tag)] = clamp(float(w))
        except (TypeError, ValueError):
            continue
    return out


def _parse_bandit(raw: Any) -> Dict[str, Dict[str, int]]:
    out: Dict[str, Dict[str, int]] = {}
    if not isinstance(raw, dict):
        return out
    for tag, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        try:
            out[str(tag)] = {
                "shown": max(0, int(entry.get("shown", 0) or 0)),
                "success": max(0, int(entry.get("success", 0) or 0)),
            }
        except (TypeError, ValueError):
            continue
    return out


class PreferenceStore:
    """
    Single owner of the preference model and bandit counters.
    Loaded lazily on first access, flushed (full overwrite) after every
    mutation. One RLock serializes mutations so the clamp/increment sequence
    of one feedback event never interleaves with another.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = Path(state_dir)
        self._lock = RLock()
        self._model: Dict[str, float] = {}
        self._bandit: Dict[str, Dict[str, int]] = {}
        self._loaded = False

    @property
    def model_path(self) -> Path:
        return self.state_dir / MODEL_BLOB

    @property
    def bandit_path(self) -> Path:
        return self.state_dir / BANDIT_BLOB

    # ---------------- load / flush ----------------

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._model = _parse_model(read_json(self.model_path, {}))
        self._bandit = _parse_bandit(read_json(self.bandit_path, {}))
        self._loaded = True
        log.info(f"[prefs] loaded {len(self._model)} weights, {len(self._bandit)} bandit tags from {self.state_dir}")

    def _commit(self, model: Dict[str, float], bandit: Dict[str, Dict[str, int]]) -> None:
        # write first, swap after: a failed write leaves memory as it was
        write_json(self.model_path, model)
        try:
            write_json(self.bandit_path, bandit)
        except OSError:
            # keep the two blobs in step on disk too
            write_json(self.model_path, self._model)
            raise
        self._model, self._bandit = model, bandit

    def reload(self) -> None:
        with self._lock:
            self._loaded = False
            self._ensure_loaded()

    # ---------------- reads ----------------

    def snapshot(self) -> PreferenceState:
        with self._lock:
            self._ensure_loaded()
            return PreferenceState(
                model=dict(self._model),
                bandit={t: BanditEntry(**e) for t, e in self._bandit.items()},
            )

    def weight(self, tag: str) -> float:
        with self._lock:
            self._ensure_loaded()
            return self._model.get(tag, 0.0)

    def bandit_entry(self, tag: str) -> BanditEntry:
        with self._lock:
            self._ensure_loaded()
            return BanditEntry(**self._bandit.get(tag, {}))

    # ---------------- writes ----------------

    def apply_feedback(self, tags: Sequence[str], delta: int) -> Dict[str, Any]:
        """
        Like (+1) / skip (-1) for every tag on an item:
          weight  <- clamp(weight + 2*delta)
          success += 1 on a like (entry created either way)
        """
        if delta not in (1, -1):
            raise ValueError(f"delta must be +1 or -1, got {delta!r}")
        uniq = list(dict.fromkeys(t for t in tags if t))
        with self._lock:
            self._ensure_loaded()
            model = dict(self._model)
            bandit = {t: dict(e) for t, e in self._bandit.items()}
            for t in uniq:
                model[t] = clamp(model.get(t, 0.0) + delta * 2)
                entry = bandit.setdefault(t, {"shown": 0, "success": 0})
                if delta > 0:
                    entry["success"] += 1
            self._commit(model, bandit)
            return {
                "weights": {t: model[t] for t in uniq},
                "bandit": {t: dict(bandit[t]) for t in uniq},
            }

    def record_impressions(self, items: Iterable[Item]) -> Dict[str, int]:
        """
        One impression per item: each distinct tag on it gets shown += 1.
        Returns the per-tag increments applied in this call.
        """
        bumped: Dict[str, int] = {}
        with self._lock:
            self._ensure_loaded()
            bandit = {t: dict(e) for t, e in self._bandit.items()}
            for it in items:
                for t in dict.fromkeys(it.tags):
                    entry = bandit.setdefault(t, {"shown": 0, "success": 0})
                    entry["shown"] += 1
                    bumped[t] = bumped.get(t, 0) + 1
            if bumped:
                self._commit(dict(self._model), bandit)
        return bumped

    def to_public(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            return {
                "preferenceModel": dict(self._model),
                "banditStats": {t: dict(e) for t, e in self._bandit.items()},
            }


@lru_cache(maxsize=8)
def _store_for(state_dir: Path) -> PreferenceStore:
    return PreferenceStore(state_dir)


def get_preference_store(state_dir: Optional[Path] = None) -> PreferenceStore:
    """Process-wide store per state directory (follows DATA_DIR)."""
    return _store_for(Path(state_dir or get_state_dir()).resolve())
