# vitalplate_backend/app/services/vitals/feed.py
from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from vitalplate_backend.app.config.manifest import get_ranking_settings
from vitalplate_backend.app.config.paths import get_vitals_path
from vitalplate_backend.app.models.recommend import VitalsSnapshot
from vitalplate_backend.app.utils.storage import read_json

log = logging.getLogger("vitalplate.vitals")

# Purpose:
# Latest biometric snapshot, polled from a JSON file the wearable bridge writes.
# Each refresh replaces the snapshot wholesale; a ranking cycle reads one
# snapshot and never sees a half-updated one.
# simulate=True nudges the last reading within plausible bounds (demo mode).

ACTIVITY_LEVELS = ("low", "moderate", "high")

# field -> (lo, hi, max step)
DRIFT_BOUNDS: Dict[str, tuple] = {
    "heart_rate": (50, 120, 4),
    "bp_systolic": (90, 160, 3),
    "bp_diastolic": (60, 100, 2),
}
CALORIE_STEP = 50

DEFAULT_READING: Dict[str, Any] = {
    "heart_rate": 72,
    "calories_burned": 250,
    "bp_systolic": 120,
    "bp_diastolic": 80,
    "activity_level": "moderate",
}


def _walk(rng: random.Random, value: float, lo: float, hi: float, step: float) -> float:
    return float(max(lo, min(hi, round(value + rng.uniform(-step, step)))))


def drift(snapshot: VitalsSnapshot, rng: random.Random) -> VitalsSnapshot:
    """One simulated step from `snapshot`; missing fields start from DEFAULT_READING."""
    cur = {**DEFAULT_READING, **snapshot.model_dump(exclude_none=True)}
    nxt: Dict[str, Any] = dict(cur)
    for name, (lo, hi, step) in DRIFT_BOUNDS.items():
        nxt[name] = _walk(rng, float(cur[name]), lo, hi, step)
    nxt["calories_burned"] = float(max(0, round(float(cur["calories_burned"]) + rng.uniform(-CALORIE_STEP, CALORIE_STEP))))
    nxt["activity_level"] = rng.choice(ACTIVITY_LEVELS)
    nxt["timestamp"] = datetime.now(timezone.utc)
    return VitalsSnapshot.model_validate(nxt)


def load_snapshot(path: Optional[Path] = None) -> Optional[VitalsSnapshot]:
    """
    Read the wearable JSON. Accepts a single reading or a list (last one wins).
    Missing/garbled file -> None.
    """
    raw = read_json(path or get_vitals_path(), None)
    if isinstance(raw, list):
        raw = raw[-1] if raw else None
    if not isinstance(raw, dict):
        return None
    try:
        return VitalsSnapshot.model_validate(raw)
    except ValueError as e:
        log.warning(f"[vitals] unreadable snapshot: {e}")
        return None


class VitalsFeed:
    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        simulate: bool = False,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.path = path
        self.simulate = simulate
        self.rng = rng or random.Random()
        self._lock = Lock()
        self._current: Optional[VitalsSnapshot] = None

    def current(self) -> Optional[VitalsSnapshot]:
        with self._lock:
            if self._current is None:
                self._current = load_snapshot(self.path)
            return self._current

    def refresh(self) -> Optional[VitalsSnapshot]:
        """Re-poll the file; in simulate mode, drift from the last reading instead."""
        with self._lock:
            if self.simulate:
                base = self._current or load_snapshot(self.path) or VitalsSnapshot()
                self._current = drift(base, self.rng)
            else:
                self._current = load_snapshot(self.path)
            return self._current

    def set(self, snapshot: Optional[VitalsSnapshot]) -> None:
        with self._lock:
            self._current = snapshot

    def to_public(self) -> Dict[str, Any]:
        snap = self.current()
        return {
            "vitals": snap.model_dump(mode="json", by_alias=True) if snap else None,
            "high_risk": bool(snap and snap.high_risk),
            "simulated": self.simulate,
        }


_FEED: Optional[VitalsFeed] = None
_FEED_LOCK = Lock()

def get_vitals_feed() -> VitalsFeed:
    global _FEED
    with _FEED_LOCK:
        if _FEED is None:
            _FEED = VitalsFeed(simulate=get_ranking_settings().simulate_vitals)
        return _FEED

def reset_vitals_feed() -> None:
    global _FEED
    with _FEED_LOCK:
        _FEED = None
