# vitalplate_backend/app/services/learning/feedback_flow.py
from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from vitalplate_backend.app.models.feedback import FeedbackIn, ImpressionIn
from vitalplate_backend.app.models.recommend import Item
from vitalplate_backend.app.services.data_stores.preferences import PreferenceStore, get_preference_store

log = logging.getLogger("vitalplate.feedback")


class UnknownItemError(KeyError):
    """Feedback names an item id this process never served and carries no tags."""


# ---------------- served-item registry ----------------

class ServedItems:
    """
    Items handed out by recent (non-stale) ranking cycles, keyed by id, so the
    front-end can send feedback/impressions with ids only. Bounded LRU.
    """
    def __init__(self, capacity: int = 1000) -> None:
        self.capacity = capacity
        self._items: "OrderedDict[str, Item]" = OrderedDict()
        self._lock = Lock()

    def register(self, items: Iterable[Item]) -> None:
        with self._lock:
            for it in items:
                self._items[it.id] = it
                self._items.move_to_end(it.id)
            while len(self._items) > self.capacity:
                self._items.popitem(last=False)

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.get(item_id)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


# in-process registry (cleared per test run)
_SERVED = ServedItems()

def get_served_items() -> ServedItems:
    return _SERVED


# ---------------- handler ----------------

class FeedbackHandler:
    """
    Applies like/skip to the preference model + bandit success counters, and
    impressions to the bandit shown counters. Both go through the store's lock.
    """
    def __init__(self, store: PreferenceStore, served: Optional[ServedItems] = None) -> None:
        self.store = store
        self.served = served if served is not None else _SERVED

    def apply_feedback(self, item: Item, delta: int) -> Dict[str, Any]:
        res = self.store.apply_feedback(item.tags, delta)
        log.info(f"[feedback] {'like' if delta > 0 else 'skip'} {item.id} tags={item.tags}")
        return res

    def resolve(self, item_id: str, tags: Optional[List[str]] = None) -> Item:
        item = self.served.get(item_id)
        if item is not None:
            return item
        if tags:
            return Item(id=item_id, title=item_id, tags=tags)
        raise UnknownItemError(item_id)

    def record_impressions(self, item_ids: Iterable[str]) -> Dict[str, Any]:
        known: List[Item] = []
        unknown: List[str] = []
        for iid in item_ids:
            it = self.served.get(iid)
            if it is None:
                unknown.append(iid)
            else:
                known.append(it)
        bumped = self.store.record_impressions(known)
        return {"counted": len(known), "unknown": unknown, "shown_increments": bumped}


def get_feedback_handler() -> FeedbackHandler:
    return FeedbackHandler(get_preference_store(), _SERVED)


# ---------------- main entrypoints ----------------

def handle_feedback(payload: FeedbackIn) -> Dict[str, Any]:
    """
    Resolve the item (served registry first, then payload tags), apply the
    delta, and echo the post-update weights/counters for its tags.
    """
    handler = get_feedback_handler()
    item = handler.resolve(payload.item_id, payload.tags)
    res = handler.apply_feedback(item, payload.delta)
    return {
        "ok": True,
        "item_id": item.id,
        "delta": payload.delta,
        "tags": item.tags,
        **res,
    }


def handle_impressions(payload: ImpressionIn) -> Dict[str, Any]:
    return {"ok": True, **get_feedback_handler().record_impressions(payload.item_ids)}
