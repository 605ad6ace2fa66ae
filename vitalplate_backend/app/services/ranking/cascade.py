# vitalplate_backend/app/services/ranking/cascade.py
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from vitalplate_backend.app.config import RankingSettings, get_ranking_settings
from vitalplate_backend.app.models.recommend import (
    Item, PreferenceState, Preferences, RankedItem, VitalsSnapshot,
)
from vitalplate_backend.app.observability.ranking_trace import RankingTrace
from .explain import MIN_FILL_REASON, reason_from_breakdown
from .fallback import fallback_rank
from .remote_client import RemoteRankingClient, RemoteResult, RemoteStatus
from .scoring import rank_pool, score_breakdown

log = logging.getLogger("vitalplate.cascade")

# Purpose:
# Explicit state machine for one ranking cycle:
#   REMOTE_ATTEMPT -> SUCCESS -> DONE
#   REMOTE_ATTEMPT -> PARTIAL_SUCCESS | FAILURE -> LOCAL_FALLBACK -> MINIMUM_FILL -> DONE
# The remote step always completes before any local step starts.
# Output is a subset of the pool, never shorter than min(min_picks, |pool|).


class CascadeState(str, Enum):
    REMOTE_ATTEMPT = "remote_attempt"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"
    LOCAL_FALLBACK = "local_fallback"
    MINIMUM_FILL = "minimum_fill"
    DONE = "done"


@dataclass
class CascadeResult:
    items: List[RankedItem] = field(default_factory=list)
    outcome: Optional[CascadeState] = None  # SUCCESS / PARTIAL_SUCCESS / FAILURE
    empty_pool: bool = False
    trace: Optional[RankingTrace] = None

    @property
    def state(self) -> CascadeState:
        return CascadeState.DONE


class CycleTracker:
    """
    Hands out increasing sequence numbers per ranking cycle. A cycle that
    finishes after a newer one began is stale; its result must not replace
    the newer one.
    """
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = 0

    def begin(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, seq: int) -> bool:
        with self._lock:
            return seq == self._latest

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest


def _dedupe(items: Sequence[RankedItem]) -> List[RankedItem]:
    seen: set[Tuple[str, str]] = set()
    out: List[RankedItem] = []
    for r in items:
        if r.item.key in seen:
            continue
        seen.add(r.item.key)
        out.append(r)
    return out


def unique_pool(pool: Sequence[Item]) -> List[Item]:
    """First occurrence per (title, partner); every floor is computed on this."""
    seen: set[Tuple[str, str]] = set()
    out: List[Item] = []
    for it in pool:
        if it.key in seen:
            continue
        seen.add(it.key)
        out.append(it)
    return out


class RecommendationCascade:
    def __init__(
        self,
        client: RemoteRankingClient,
        *,
        min_picks: int = 5,
        max_returned: int = 12,
        jitter: bool = True,
    ) -> None:
        self.client = client
        self.min_picks = max(1, int(min_picks))
        self.max_returned = max(self.min_picks, int(max_returned))
        self.jitter = jitter

    @classmethod
    def from_settings(
        cls,
        settings: Optional[RankingSettings] = None,
        client: Optional[RemoteRankingClient] = None,
    ) -> "RecommendationCascade":
        s = settings or get_ranking_settings()
        return cls(
            client or RemoteRankingClient.from_settings(s),
            min_picks=s.min_picks,
            max_returned=s.max_returned,
            jitter=s.jitter,
        )

    def _rng(self, seed: Optional[int]) -> Optional[random.Random]:
        if not self.jitter:
            return None
        return random.Random(seed)

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def classify(self, remote: RemoteResult) -> CascadeState:
        if remote.status is RemoteStatus.FAILURE or not remote.items:
            return CascadeState.FAILURE
        if len(remote.items) >= self.min_picks:
            return CascadeState.SUCCESS
        return CascadeState.PARTIAL_SUCCESS

    def annotate_remote(
        self,
        remote: RemoteResult,
        vitals: Optional[VitalsSnapshot],
        state: PreferenceState,
        rng: Optional[random.Random],
    ) -> List[RankedItem]:
        # list order is the oracle rank; score is the engine total, shown for context only
        # and not re-sorted, so scores need not descend on this path. A reason is filled
        # in only where the oracle gave none.
        out: List[RankedItem] = []
        for r in remote.items:
            bd = score_breakdown(r.item, vitals, state.model, state.bandit, rng)
            reason = r.reason or reason_from_breakdown(r.item, bd, vitals)
            out.append(RankedItem(item=r.item.annotate(reason=reason), score=bd.total, reason=reason))
        return out

    def local_fallback(
        self,
        pool: Sequence[Item],
        vitals: Optional[VitalsSnapshot],
        prefs: Optional[Preferences],
        state: PreferenceState,
        rng: Optional[random.Random],
        seed_titles: Optional[Sequence[str]] = None,
    ) -> List[RankedItem]:
        """
        Lexical fallback over the whole pool, blended with the scoring engine so
        learned preferences still count when the oracle is unavailable.
        """
        lexical = fallback_rank(pool, prefs, vitals, seed_titles, max_returned=len(pool))
        blended: List[RankedItem] = []
        for r in lexical:
            bd = score_breakdown(r.item, vitals, state.model, state.bandit, rng)
            extra = [h for h in bd.hints if h not in r.reason]
            reason = r.reason + (f" • {' • '.join(extra)}" if extra else "")
            blended.append(RankedItem(item=r.item.annotate(reason=reason), score=r.score + bd.total, reason=reason))
        return sorted(blended, key=lambda x: x.score, reverse=True)

    def merge_partial(self, remote_items: Sequence[RankedItem], fallback_items: Sequence[RankedItem]) -> List[RankedItem]:
        return _dedupe(list(remote_items) + list(fallback_items))

    def minimum_fill(
        self,
        items: Sequence[RankedItem],
        pool: Sequence[Item],
        vitals: Optional[VitalsSnapshot],
        state: PreferenceState,
        rng: Optional[random.Random],
    ) -> List[RankedItem]:
        pool = unique_pool(pool)
        floor = min(self.min_picks, len(pool))
        out = _dedupe(items)
        if len(out) >= floor:
            return out
        present = {r.item.key for r in out}
        for r in rank_pool(pool, vitals, state.model, state.bandit, rng):
            if len(out) >= floor:
                break
            if r.item.key in present:
                continue
            present.add(r.item.key)
            out.append(RankedItem(item=r.item.annotate(reason=MIN_FILL_REASON), score=r.score, reason=MIN_FILL_REASON))
        return out

    def finalize(self, items: Sequence[RankedItem], pool_size: int) -> List[RankedItem]:
        floor = min(self.min_picks, pool_size)
        return list(items)[: max(self.max_returned, floor)]

    # ------------------------------------------------------------------
    # driver
    # ------------------------------------------------------------------

    async def run(
        self,
        pool: Sequence[Item],
        vitals: Optional[VitalsSnapshot],
        prefs: Optional[Preferences],
        state: Optional[PreferenceState] = None,
        *,
        seed: Optional[int] = None,
        trace: Optional[RankingTrace] = None,
    ) -> CascadeResult:
        received = len(pool)
        pool = unique_pool(pool)
        if len(pool) < received:
            log.info(f"[cascade] dropped {received - len(pool)} duplicate pool item(s)")
        state = state or PreferenceState()
        trace = trace or RankingTrace()
        trace.set_meta(pool_size=len(pool), duplicates_dropped=received - len(pool), min_picks=self.min_picks, max_returned=self.max_returned, seed=seed)

        if not pool:
            trace.enter(CascadeState.DONE.value, empty_pool=True)
            return CascadeResult(items=[], outcome=None, empty_pool=True, trace=trace)

        rng = self._rng(seed)

        trace.enter(CascadeState.REMOTE_ATTEMPT.value)
        try:
            remote = await self.client.rank(pool, vitals, prefs)
        except Exception as e:  # rank() should never raise; count it as a failed attempt
            log.exception("[cascade] remote client raised")
            remote = RemoteResult.failure(f"client raised: {e}")
        outcome = self.classify(remote)
        trace.set_remote(remote.status.value, len(remote.items), remote.error)
        trace.enter(outcome.value, remote_count=len(remote.items))

        if outcome is CascadeState.SUCCESS:
            items = self.finalize(self.annotate_remote(remote, vitals, state, rng), len(pool))
            trace.enter(CascadeState.DONE.value, count=len(items))
            trace.set_outputs(count=len(items), titles=[r.item.title for r in items])
            return CascadeResult(items=items, outcome=outcome, trace=trace)

        if outcome is CascadeState.PARTIAL_SUCCESS:
            remote_items = self.annotate_remote(remote, vitals, state, rng)
            fallback_items = self.local_fallback(pool, vitals, prefs, state, rng, seed_titles=remote.titles)
            items = self.merge_partial(remote_items, fallback_items)
            log.info(f"[cascade] partial remote answer ({len(remote_items)}) merged with local fallback")
        else:
            items = self.local_fallback(pool, vitals, prefs, state, rng)
            log.info(f"[cascade] remote unavailable ({remote.error}); using local fallback")
        trace.enter(CascadeState.LOCAL_FALLBACK.value, count=len(items))

        before = len(items)
        items = self.minimum_fill(items, pool, vitals, state, rng)
        trace.enter(CascadeState.MINIMUM_FILL.value, added=len(items) - before)

        items = self.finalize(items, len(pool))
        trace.enter(CascadeState.DONE.value, count=len(items))
        trace.set_outputs(count=len(items), titles=[r.item.title for r in items])
        return CascadeResult(items=items, outcome=outcome, trace=trace)

