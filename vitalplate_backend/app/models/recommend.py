# vitalplate_backend/app/models/recommend.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Wire records accept both camelCase (front-end / oracle) and snake_case keys.
_WIRE = dict(alias_generator=to_camel, populate_by_name=True)

# Preference weights live in this closed range; every update clamps into it.
WEIGHT_MIN = -20.0
WEIGHT_MAX = 40.0


def slug(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(s or "").lower()).strip("-")


def _norm_tags(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    out: List[str] = []
    for t in raw:
        t2 = str(t or "").strip().lower()
        if t2 and t2 not in out:
            out.append(t2)
    return out


class Macros(BaseModel):
    kcal: Optional[float] = None
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fat_g: Optional[float] = None
    fiber_g: Optional[float] = None
    sodium_mg: Optional[float] = None

    model_config = ConfigDict(extra="allow")


class Item(BaseModel):
    """
    A candidate dish. Identity is (title, partner), case-insensitive.
    `remote_score` and `reason` are annotations; ranking sets them on copies
    via `annotate()` so the pool itself stays untouched.
    """
    id: Optional[str] = None
    title: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    macros: Optional[Macros] = None
    partner: Optional[str] = None
    city: Optional[str] = None
    price: Optional[float] = None
    description: str = ""
    type: Optional[str] = None

    remote_score: Optional[float] = None
    reason: Optional[str] = None

    model_config = ConfigDict(extra="allow", **_WIRE)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return _norm_tags(v)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> Optional[float]:
        # partner menus ship prices as "", "₹180" or "180.00"
        if v is None or isinstance(v, (int, float)):
            return v
        digits = re.sub(r"[^0-9.]", "", str(v))
        try:
            return float(digits) if digits else None
        except ValueError:
            return None

    @field_validator("description", mode="before")
    @classmethod
    def _desc(cls, v: Any) -> str:
        return str(v or "")

    @model_validator(mode="after")
    def _default_id(self) -> "Item":
        if not self.id:
            self.id = slug(self.title) + (f"--{slug(self.partner)}" if self.partner else "")
        return self

    @property
    def key(self) -> Tuple[str, str]:
        return (self.title.strip().lower(), (self.partner or "").strip().lower())

    def text(self) -> str:
        """Lower-cased searchable text: title, description and tags."""
        return " ".join([self.title, self.description, " ".join(self.tags)]).lower()

    def annotate(self, **fields: Any) -> "Item":
        return self.model_copy(update=fields)


class VitalsSnapshot(BaseModel):
    """
    Point-in-time biometric reading. Replaced wholesale on refresh.
    Missing fields stay None so rules keyed on them simply don't fire.
    """
    heart_rate: Optional[float] = None
    calories_burned: Optional[float] = None
    bp_systolic: Optional[float] = None
    bp_diastolic: Optional[float] = None
    activity_level: Optional[str] = None
    blood_sugar: Optional[float] = None
    steps: Optional[int] = None
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(frozen=True, extra="ignore", **_WIRE)

    @model_validator(mode="before")
    @classmethod
    def _legacy_shapes(cls, data: Any) -> Any:
        # wearable feed nests activity under "analysis" and may send bp as "130/85"
        if not isinstance(data, dict):
            return data
        data = dict(data)
        analysis = data.get("analysis")
        if isinstance(analysis, dict) and not (data.get("activityLevel") or data.get("activity_level")):
            lvl = analysis.get("activityLevel") or analysis.get("activity_level")
            if lvl:
                data["activityLevel"] = lvl
        bp = data.get("bp")
        if isinstance(bp, str) and "/" in bp:
            sys_s, _, dia_s = bp.partition("/")
            try:
                data.setdefault("bpSystolic", float(sys_s))
                data.setdefault("bpDiastolic", float(dia_s))
            except ValueError:
                pass
        return data

    @field_validator("activity_level", mode="before")
    @classmethod
    def _level(cls, v: Any) -> Optional[str]:
        s = str(v or "").strip().lower()
        return s or None

    @property
    def elevated_bp(self) -> bool:
        return (self.bp_systolic is not None and self.bp_systolic >= 130) or \
               (self.bp_diastolic is not None and self.bp_diastolic >= 80)

    @property
    def high_risk(self) -> bool:
        return (self.bp_systolic is not None and self.bp_systolic >= 140) or \
               (self.bp_diastolic is not None and self.bp_diastolic >= 90) or \
               (self.blood_sugar is not None and self.blood_sugar >= 180)

    @property
    def low_activity(self) -> bool:
        return self.activity_level == "low"

    @property
    def active(self) -> bool:
        return self.activity_level in ("moderate", "medium", "high")

    @property
    def elevated_heart_rate(self) -> bool:
        return self.heart_rate is not None and self.heart_rate >= 100

    @property
    def high_burn(self) -> bool:
        return self.calories_burned is not None and self.calories_burned > 400


_DIET_ALIASES = {
    "veg": {"veg", "vegetarian", "vegan", "plant", "plant-based"},
    "nonveg": {"nonveg", "non-veg", "non_veg", "non-vegetarian", "nonvegetarian", "meat"},
}


class Preferences(BaseModel):
    diet: Optional[str] = None
    city: Optional[str] = None
    satvik: bool = False

    model_config = ConfigDict(extra="allow", **_WIRE)

    @field_validator("diet", mode="before")
    @classmethod
    def _diet(cls, v: Any) -> Optional[str]:
        key = str(v or "").strip().lower()
        for canon, alts in _DIET_ALIASES.items():
            if key in alts:
                return canon
        return None


class BanditEntry(BaseModel):
    shown: int = Field(0, ge=0)
    success: int = Field(0, ge=0)

    def rate(self) -> float:
        """Laplace-smoothed success rate; 0.5 with no observations."""
        return (self.success + 1) / (self.shown + 2)


class RankedItem(BaseModel):
    item: Item
    score: float
    reason: str


@dataclass
class PreferenceState:
    """Read-only snapshot of the learned state handed to scoring."""
    model: Dict[str, float] = field(default_factory=dict)
    bandit: Dict[str, BanditEntry] = field(default_factory=dict)


__all__ = [
    "WEIGHT_MIN", "WEIGHT_MAX", "slug",
    "Macros", "Item", "VitalsSnapshot", "Preferences", "BanditEntry", "RankedItem", "PreferenceState",
]
