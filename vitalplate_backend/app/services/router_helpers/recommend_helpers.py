from __future__ import annotations
import logging
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

import httpx
from fastapi import HTTPException, status
from starlette.concurrency import run_in_threadpool

from vitalplate_backend.app.config import get_ranking_settings
from vitalplate_backend.app.models.feedback import FeedbackIn, ImpressionIn
from vitalplate_backend.app.models.recommend import Item, PreferenceState, VitalsSnapshot
from vitalplate_backend.app.observability.ranking_trace import RankingTrace
from vitalplate_backend.app.schemas import RecommendRequest, RecommendResponse
from vitalplate_backend.app.services.data_stores.preferences import get_preference_store
from vitalplate_backend.app.services.learning.feedback_flow import (
    UnknownItemError, get_served_items, handle_feedback, handle_impressions,
)
from vitalplate_backend.app.services.ranking.cascade import CycleTracker, RecommendationCascade
from vitalplate_backend.app.services.ranking.pool import filter_pool, flatten_partners, load_catalog
from vitalplate_backend.app.services.ranking.remote_client import RemoteRankingClient
from vitalplate_backend.app.services.ranking.rules import get_rulebook
from vitalplate_backend.app.services.vitals.feed import get_vitals_feed

log = logging.getLogger("uvicorn.error")

NO_RECOMMENDATIONS = "no recommendations available"

# process-wide cycle sequencing + last non-stale answer
_TRACKER = CycleTracker()
_LATEST: Dict[str, Any] = {"response": None}
_LATEST_LOCK = Lock()

# test hook: route oracle calls through a fake transport
_RANKER_TRANSPORT: Optional[httpx.AsyncBaseTransport] = None

def set_ranker_transport(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    global _RANKER_TRANSPORT
    _RANKER_TRANSPORT = transport

def get_cycle_tracker() -> CycleTracker:
    return _TRACKER

def reset_recommend_state() -> None:
    global _TRACKER
    _TRACKER = CycleTracker()
    with _LATEST_LOCK:
        _LATEST["response"] = None
    get_served_items().clear()
    set_ranker_transport(None)


# ----------------------------------------------------------------------
# Recommendations
# ----------------------------------------------------------------------

def _resolve_pool(req: RecommendRequest) -> List[Item]:
    if req.pool is not None or req.partners is not None:
        pool = list(req.pool or []) + flatten_partners(req.partners or [], req.prefs)
    else:
        pool = load_catalog(prefs=req.prefs)
    return filter_pool(pool, req.prefs) if req.apply_filters else pool


def _prepare(req: RecommendRequest) -> Tuple[List[Item], Optional[VitalsSnapshot], PreferenceState]:
    # file reads and the store lock; runs in the threadpool, not on the event loop
    get_rulebook()
    pool = _resolve_pool(req)
    vitals = req.vitals if req.vitals is not None else get_vitals_feed().current()
    state = get_preference_store().snapshot()
    return pool, vitals, state


async def recommend(req: RecommendRequest) -> RecommendResponse:
    settings = get_ranking_settings()
    pool, vitals, state = await run_in_threadpool(_prepare, req)

    client = RemoteRankingClient.from_settings(settings, transport=_RANKER_TRANSPORT)
    cascade = RecommendationCascade.from_settings(settings, client)

    tracker = _TRACKER
    seq = tracker.begin()
    trace = RankingTrace()
    trace.set_meta(cycle=seq)
    result = await cascade.run(pool, vitals, req.prefs, state, seed=req.seed, trace=trace)

    stale = not tracker.is_current(seq)
    resp = RecommendResponse(
        cycle=seq,
        stale=stale,
        state=result.state.value,
        outcome=result.outcome.value if result.outcome else None,
        empty=result.empty_pool,
        message=NO_RECOMMENDATIONS if result.empty_pool else None,
        items=result.items,
        vitals=vitals,
        high_risk=bool(vitals and vitals.high_risk),
        trace=trace.to_public(),
    )
    if stale:
        log.info(f"[recommend] cycle {seq} finished after cycle {tracker.latest} began; discarded")
        return resp

    get_served_items().register(r.item for r in result.items)
    with _LATEST_LOCK:
        _LATEST["response"] = resp
    return resp


def latest() -> RecommendResponse:
    with _LATEST_LOCK:
        resp = _LATEST["response"]
    if resp is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no ranking cycle has completed yet")
    return resp


# ----------------------------------------------------------------------
# Feedback / impressions
# ----------------------------------------------------------------------

def feedback(payload: FeedbackIn) -> Dict[str, Any]:
    try:
        return handle_feedback(payload)
    except UnknownItemError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"unknown item '{payload.item_id}'; send its tags to rate an item that was not served",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except OSError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"submit feedback failed: {e}",
        )


def impressions(payload: ImpressionIn) -> Dict[str, Any]:
    try:
        return handle_impressions(payload)
    except OSError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"record impressions failed: {e}",
        )


def preferences() -> Dict[str, Any]:
    return get_preference_store().to_public()
