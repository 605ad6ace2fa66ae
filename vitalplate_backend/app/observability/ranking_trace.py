# vitalplate_backend/app/observability/ranking_trace.py
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from vitalplate_backend.app.utils.req_id import new_request_id

class RankingTrace:
    """
    Lightweight, structured trace of one ranking cycle.
    Collects the cascade states visited, remote outcome, and counts per step.
    Safe to return in API responses (no secrets, no raw oracle payloads).
    """
    def __init__(self, request_id: Optional[str] = None) -> None:
        self._t0 = time.time()
        self.request_id = request_id or new_request_id()
        self.meta: Dict[str, Any] = {}
        self.states: List[str] = []
        self.steps: List[Dict[str, Any]] = []
        self.remote: Dict[str, Any] = {}
        self.outputs: Dict[str, Any] = {}

    # -------- meta --------
    def set_meta(self, **kwargs: Any) -> None:
        self.meta.update(kwargs)

    # -------- state transitions --------
    def enter(self, state: str, **detail: Any) -> None:
        self.states.append(state)
        self.steps.append({"t": time.time(), "state": state, **detail})

    # -------- remote outcome --------
    def set_remote(self, status: str, count: int, error: Optional[str] = None) -> None:
        self.remote = {"status": status, "count": int(count), "error": error}

    # -------- final outputs snapshot --------
    def set_outputs(self, **kwargs: Any) -> None:
        self.outputs.update(kwargs)

    # -------- export --------
    def to_public(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "elapsed_ms": int((time.time() - self._t0) * 1000),
            "meta": self.meta,
            "states": self.states,
            "steps": self.steps,
            "remote": self.remote,
            "outputs": self.outputs,
        }
