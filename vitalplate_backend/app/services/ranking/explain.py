# vitalplate_backend/app/services/ranking/explain.py
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from vitalplate_backend.app.models.recommend import Item, VitalsSnapshot
from .rules import get_rulebook

if TYPE_CHECKING:  # pragma: no cover
    from .scoring import ScoreBreakdown

# Purpose:
# Human-readable "why" text for a ranked item. Vitals hints win; otherwise the
# first known tag explanation; otherwise a generic line. Numbers are never
# quoted because the feed may refresh faster than the UI re-renders.

GENERIC_REASON = "matches your preferences"
FALLBACK_LABEL = "fallback suggestion"
MIN_FILL_REASON = "included to reach minimum recommendations"


def metrics_context(vitals: Optional[VitalsSnapshot]) -> str:
    if vitals is None:
        return ""
    parts: List[str] = []
    if vitals.calories_burned is not None:
        parts.append("calorie burn")
    if vitals.bp_systolic is not None and vitals.bp_diastolic is not None:
        parts.append("blood pressure")
    if vitals.activity_level:
        parts.append("activity")
    if vitals.heart_rate is not None:
        parts.append("heart rate")
    return f"based on your wearable metrics ({', '.join(parts)})" if parts else ""


def tag_explanation(item: Item) -> Optional[str]:
    explanations = get_rulebook().tag_explanations
    for t in item.tags:
        if t in explanations:
            return explanations[t]
    return None


def reason_from_breakdown(item: Item, bd: "ScoreBreakdown", vitals: Optional[VitalsSnapshot]) -> str:
    why = " • ".join(bd.hints) if bd.hints else (tag_explanation(item) or GENERIC_REASON)
    ctx = metrics_context(vitals)
    return f"{why} {ctx}".strip()


def fallback_vitals_hints(vitals: Optional[VitalsSnapshot]) -> List[str]:
    if vitals is None:
        return []
    hints: List[str] = []
    if vitals.elevated_heart_rate:
        hints.append("elevated heart rate → prefer light items")
    if vitals.low_activity:
        hints.append("low activity → prefer light items")
    if vitals.active:
        hints.append(f"{vitals.activity_level} activity → favour protein")
    return hints
