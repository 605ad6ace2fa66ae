# vitalplate_backend/app/routers/vitals.py
from __future__ import annotations
from fastapi import APIRouter

from vitalplate_backend.app.schemas import VitalsOut
from vitalplate_backend.app.services.vitals.feed import get_vitals_feed

router = APIRouter(prefix="/vitals", tags=["vitals"])

@router.get("", response_model=VitalsOut)
def current_vitals():
    return get_vitals_feed().to_public()

@router.post("/refresh", response_model=VitalsOut)
def refresh_vitals():
    feed = get_vitals_feed()
    feed.refresh()
    return feed.to_public()
