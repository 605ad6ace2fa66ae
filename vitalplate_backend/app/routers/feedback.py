# vitalplate_backend/app/routers/feedback.py
from __future__ import annotations
from typing import Any, Dict
from fastapi import APIRouter

from vitalplate_backend.app.models.feedback import FeedbackIn, ImpressionIn
from vitalplate_backend.app.schemas import PreferencesOut
from vitalplate_backend.app.services.router_helpers import recommend_helpers as H

router = APIRouter(tags=["feedback"])

# like/skip -> preference weights + bandit success
@router.post("/feedback", response_model=dict)
def submit_feedback(payload: FeedbackIn) -> Dict[str, Any]:
    return H.feedback(payload)

# cards the user actually saw -> bandit shown
@router.post("/impressions", response_model=dict)
def record_impressions(payload: ImpressionIn) -> Dict[str, Any]:
    return H.impressions(payload)

@router.get("/preferences", response_model=PreferencesOut)
def get_preferences():
    return H.preferences()
