# schemas.py  (API request/response shapes for the recommendation endpoints)

from __future__ import annotations
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from vitalplate_backend.app.models.recommend import Item, Preferences, RankedItem, VitalsSnapshot


# ===================== Requests =====================

class RecommendRequest(BaseModel):
    # pool omitted -> stored catalog; vitals omitted -> latest feed snapshot
    pool: Optional[List[Item]] = None
    partners: Optional[List[Dict[str, Any]]] = None
    vitals: Optional[VitalsSnapshot] = None
    prefs: Optional[Preferences] = None
    seed: Optional[int] = None
    apply_filters: bool = Field(True, alias="applyFilters")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ===================== Responses =====================

class RecommendResponse(BaseModel):
    cycle: int
    stale: bool = False
    state: str = "done"
    outcome: Optional[str] = None
    empty: bool = False
    message: Optional[str] = None
    items: List[RankedItem] = Field(default_factory=list)
    vitals: Optional[VitalsSnapshot] = None
    high_risk: bool = False
    trace: Dict[str, Any] = Field(default_factory=dict)


class PreferencesOut(BaseModel):
    preferenceModel: Dict[str, float] = Field(default_factory=dict)
    banditStats: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class VitalsOut(BaseModel):
    vitals: Optional[Dict[str, Any]] = None
    high_risk: bool = False
    simulated: bool = False


__all__ = ["RecommendRequest", "RecommendResponse", "PreferencesOut", "VitalsOut"]
