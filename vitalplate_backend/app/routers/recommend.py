# vitalplate_backend/app/routers/recommend.py
from __future__ import annotations
from fastapi import APIRouter

from vitalplate_backend.app.schemas import RecommendRequest, RecommendResponse
from vitalplate_backend.app.services.router_helpers import recommend_helpers as H

router = APIRouter(prefix="/recommendations", tags=["recommendations"])

@router.post("", response_model=RecommendResponse)
async def recommend(req: RecommendRequest):
    return await H.recommend(req)

@router.get("/latest", response_model=RecommendResponse)
def latest():
    return H.latest()
