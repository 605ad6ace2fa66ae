# vitalplate_backend/app/services/ranking/remote_client.py
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from vitalplate_backend.app.config import RankingSettings, get_ranking_settings
from vitalplate_backend.app.models.recommend import Item, Preferences, RankedItem, VitalsSnapshot

log = logging.getLogger("vitalplate.remote")

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class RemoteRankingError(RuntimeError):
    """Transport or payload problem talking to the ranking oracle. Never leaves rank()."""


class RemoteStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class RemoteResult:
    status: RemoteStatus
    items: List[RankedItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def insufficient(self) -> bool:
        return self.status is RemoteStatus.PARTIAL

    @property
    def titles(self) -> List[str]:
        return [r.item.title for r in self.items]

    @classmethod
    def failure(cls, error: str) -> "RemoteResult":
        return cls(status=RemoteStatus.FAILURE, error=error)


# -----------------------------------------------------------------------------
# Payload helpers
# -----------------------------------------------------------------------------

def build_request_body(
    pool: Sequence[Item],
    vitals: Optional[VitalsSnapshot],
    prefs: Optional[Preferences],
) -> Dict[str, Any]:
    dump = dict(mode="json", by_alias=True, exclude_none=True)
    return {
        "vitals": vitals.model_dump(**dump) if vitals is not None else {},
        "prefs": prefs.model_dump(**dump) if prefs is not None else {},
        "candidates": [it.model_dump(exclude={"reason", "remote_score"}, **dump) for it in pool],
    }


def extract_picks(payload: Any) -> List[Any]:
    """
    Accept a bare JSON array, {"picks": [...]}, or chat-style text that embeds
    an array (under "content"/"answer", or as the whole body).
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        picks = payload.get("picks")
        if isinstance(picks, list):
            return picks
        for k in ("content", "answer"):
            if isinstance(payload.get(k), str):
                return extract_picks(payload[k])
        raise RemoteRankingError("response object has no picks array")
    if isinstance(payload, str):
        m = _ARRAY_RE.search(payload)
        if m:
            try:
                arr = json.loads(m.group(0))
            except ValueError as e:
                raise RemoteRankingError(f"embedded array is not valid JSON: {e}") from e
            if isinstance(arr, list):
                return arr
    raise RemoteRankingError(f"response is not an array ({type(payload).__name__})")


def _remote_score(raw: Any) -> Optional[float]:
    try:
        v = float(raw)
    except (TypeError, ValueError):
        return None
    return v if 0.0 <= v <= 10.0 else None


def validate_picks(picks: Sequence[Any], pool: Sequence[Item]) -> List[RankedItem]:
    """
    Keep only picks that name an item actually in the pool. Partner-sourced
    items must be named with their partner too. Duplicates collapse to the
    first occurrence; oracle order is preserved.
    """
    by_title: Dict[str, List[Item]] = {}
    for it in pool:
        by_title.setdefault(it.key[0], []).append(it)

    seen: set[Tuple[str, str]] = set()
    out: List[RankedItem] = []
    dropped = 0
    for el in picks:
        if not isinstance(el, dict):
            dropped += 1
            continue
        title = str(el.get("title") or el.get("name") or "").strip().lower()
        partner = str(el.get("partner") or "").strip().lower()
        match = next((c for c in by_title.get(title, []) if c.key[1] == partner), None)
        if match is None or match.key in seen:
            dropped += 1
            continue
        seen.add(match.key)
        reason = str(el.get("reason") or "").strip() or None
        rs = _remote_score(el.get("score"))
        annotated = match.annotate(
            remote_score=rs if rs is not None else match.remote_score,
            reason=reason,
        )
        out.append(RankedItem(item=annotated, score=0.0, reason=reason or ""))
    if dropped:
        log.info(f"[remote] dropped {dropped} pick(s) not present in the candidate pool")
    return out


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------

class RemoteRankingClient:
    """
    One POST to the ranking oracle with a hard deadline. rank() always
    resolves to a RemoteResult; transport, status and payload errors become
    FAILURE, a short answer becomes PARTIAL.
    """

    def __init__(
        self,
        url: Optional[str],
        *,
        token: Optional[str] = None,
        timeout_s: float = 8.0,
        min_results: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout_s = float(timeout_s)
        self.min_results = max(1, int(min_results))
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Optional[RankingSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RemoteRankingClient":
        s = settings or get_ranking_settings()
        return cls(
            s.ranker_url,
            token=s.ranker_token,
            timeout_s=s.ranker_timeout_s,
            min_results=s.remote_min_results,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, body: Dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.post(self.url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise RemoteRankingError(f"timed out after {self.timeout_s}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteRankingError(f"transport error: {e}") from e

        if not resp.is_success:
            raise RemoteRankingError(f"oracle returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteRankingError(f"unparseable body: {resp.text[:120]!r}") from e

    async def rank(
        self,
        pool: Sequence[Item],
        vitals: Optional[VitalsSnapshot],
        prefs: Optional[Preferences],
    ) -> RemoteResult:
        if not self.url:
            return RemoteResult.failure("ranker not configured")
        if not pool:
            return RemoteResult.failure("empty candidate pool")

        body = build_request_body(pool, vitals, prefs)
        try:
            payload = await asyncio.wait_for(self._post(body), timeout=self.timeout_s)
            picks = extract_picks(payload)
        except asyncio.TimeoutError:
            log.warning(f"[remote] deadline of {self.timeout_s}s exceeded")
            return RemoteResult.failure(f"timed out after {self.timeout_s}s")
        except RemoteRankingError as e:
            log.warning(f"[remote] {e}")
            return RemoteResult.failure(str(e))

        items = validate_picks(picks, pool)
        if not items:
            log.warning("[remote] no valid picks in oracle response")
            return RemoteResult.failure("no valid picks")
        if len(items) < self.min_results:
            log.info(f"[remote] insufficient picks: {len(items)} < {self.min_results}")
            return RemoteResult(status=RemoteStatus.PARTIAL, items=items)
        return RemoteResult(status=RemoteStatus.SUCCESS, items=items)
