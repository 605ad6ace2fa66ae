# vitalplate_backend/app/services/ranking/fallback.py
from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Sequence, Set

from vitalplate_backend.app.models.recommend import Item, Preferences, RankedItem, VitalsSnapshot
from .explain import FALLBACK_LABEL, fallback_vitals_hints
from .rules import Rulebook, get_rulebook

# Purpose:
# Local lexicon ranking used when the remote oracle is down or returns too little.
# Deterministic: the only tie-breaker is derived from text length, and sorting is stable.
# Steps:
#  1) pick active lexicons from diet pref + vitals (light style / protein)
#  2) per item: fixed bonus per matched lexicon + small bonus per distinct keyword
#  3) seed titles from a partial remote answer get a large promotion
#  4) stable sort, cap at max_returned, attach a reason

DEFAULT_MAX_RETURNED = 12

_DIET_LABEL = {"veg": "vegetarian match", "nonveg": "non-vegetarian match"}


@lru_cache(maxsize=512)
def _kw_pattern(word: str) -> Pattern[str]:
    # hyphen counts as part of a word so "veg" does not hit "non-veg"
    return re.compile(r"(?<![a-z0-9-])" + re.escape(word) + r"(?![a-z0-9-])")


def _matched(text: str, words: Iterable[str]) -> Set[str]:
    return {w for w in words if _kw_pattern(w).search(text)}


def _norm_title(s: str) -> str:
    return " ".join(str(s or "").lower().split())


def active_lexicons(
    prefs: Optional[Preferences],
    vitals: Optional[VitalsSnapshot],
    book: Optional[Rulebook] = None,
) -> Dict[str, FrozenSet[str]]:
    book = book or get_rulebook()
    active: Dict[str, FrozenSet[str]] = {}
    if prefs is not None and prefs.diet in ("veg", "nonveg"):
        active["diet"] = book.lexicon(prefs.diet)
    if vitals is not None and (vitals.elevated_heart_rate or vitals.low_activity):
        active["style"] = book.lexicon("light")
    if vitals is not None and vitals.active:
        active["protein"] = book.lexicon("protein")
    return active


def seed_match(title: str, seed_titles: Sequence[str]) -> bool:
    t = _norm_title(title)
    if not t:
        return False
    for s in seed_titles:
        s2 = _norm_title(s)
        if s2 and (s2 in t or t in s2):
            return True
    return False


def _price_adjustment(price: Optional[float], cap: float) -> float:
    if price is None or price <= 0 or cap <= 0:
        return 0.0
    return -min(price, cap) / cap


def fallback_rank(
    pool: Sequence[Item],
    prefs: Optional[Preferences],
    vitals: Optional[VitalsSnapshot],
    seed_titles: Optional[Sequence[str]] = None,
    *,
    max_returned: int = DEFAULT_MAX_RETURNED,
) -> List[RankedItem]:
    book = get_rulebook()
    lex = active_lexicons(prefs, vitals, book)
    seeds = [s for s in (seed_titles or []) if s]
    hints = fallback_vitals_hints(vitals)
    diet_label = _DIET_LABEL.get(prefs.diet) if prefs is not None and prefs.diet else None

    scored: List[RankedItem] = []
    for it in pool:
        text = it.text()
        total = 0.0
        labels: List[str] = []
        keywords: Set[str] = set()

        if "diet" in lex:
            hit = _matched(text, lex["diet"])
            if hit:
                total += book.weight("diet_match")
                labels.append(diet_label or "diet match")
                keywords |= hit
        if "style" in lex:
            hit = _matched(text, lex["style"])
            if hit:
                total += book.weight("style_match")
                labels.append("light style")
                keywords |= hit
        if "protein" in lex:
            hit = _matched(text, lex["protein"])
            if hit:
                total += book.weight("protein_match")
                labels.append("protein-rich")
                keywords |= hit

        total += book.weight("per_keyword") * len(keywords)
        total += 1.0 / (1.0 + len(text))
        total += _price_adjustment(it.price, book.weight("price_cap"))

        if seeds and seed_match(it.title, seeds):
            total += book.weight("seed_promotion")
            labels.insert(0, "suggested by remote ranking")

        why = ", ".join(labels) if labels else "popular pick from available menus"
        reason = f"{FALLBACK_LABEL}: {why}"
        if hints:
            reason = f"{reason} • {' • '.join(hints)}"
        scored.append(RankedItem(item=it, score=total, reason=reason))

    ranked = sorted(scored, key=lambda r: r.score, reverse=True)
    return ranked[: max(0, min(int(max_returned), len(ranked)))]
