# vitalplate_backend/app/services/ranking/scoring.py
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from vitalplate_backend.app.models.recommend import BanditEntry, Item, RankedItem, VitalsSnapshot
from .explain import reason_from_breakdown

# Purpose:
# Additive item score = preference + vitals rules + bandit + remote + jitter.
# Every term is exposed through score_breakdown() so it can be asserted on its own.
# Pure: no I/O, no state; randomness only through an injected rng.

RECOVERY_TAGS = frozenset({"recovery", "high-protein-snack"})
LOW_SODIUM_TAGS = frozenset({"low-sodium"})
LIGHT_TAGS = frozenset({"light", "light-clean"})

RECOVERY_BONUS = 8.0
LOW_SODIUM_BONUS = 10.0
LIGHT_BONUS = 6.0

BANDIT_SCALE = 4.0
REMOTE_SCALE = 2.0
JITTER_MAX = 1.5

HINT_RECOVERY = "high calorie burn → protein supports recovery"
HINT_LOW_SODIUM = "elevated BP → low sodium helps"
HINT_LIGHT = "low activity → lighter, easy-to-digest meal"


@dataclass
class ScoreBreakdown:
    total: float = 0.0
    terms: Dict[str, float] = field(default_factory=dict)
    hints: List[str] = field(default_factory=list)


def preference_term(tags: Sequence[str], model: Mapping[str, float]) -> float:
    return sum(float(model.get(t, 0.0) or 0.0) for t in tags)


def vitals_terms(tags: Sequence[str], vitals: Optional[VitalsSnapshot]) -> tuple[float, List[str]]:
    # Rules are independent and stack; a missing vitals field means "condition false".
    if vitals is None:
        return 0.0, []
    tagset = set(tags)
    bonus, hints = 0.0, []
    if vitals.high_burn and tagset & RECOVERY_TAGS:
        bonus += RECOVERY_BONUS
        hints.append(HINT_RECOVERY)
    if vitals.elevated_bp and tagset & LOW_SODIUM_TAGS:
        bonus += LOW_SODIUM_BONUS
        hints.append(HINT_LOW_SODIUM)
    if vitals.low_activity and tagset & LIGHT_TAGS:
        bonus += LIGHT_BONUS
        hints.append(HINT_LIGHT)
    return bonus, hints


def bandit_term(tags: Sequence[str], bandit: Mapping[str, BanditEntry]) -> float:
    # Each tag contributes (0, 4); an unseen tag sits at 2.
    return sum(BANDIT_SCALE * bandit.get(t, BanditEntry()).rate() for t in tags)


def remote_term(item: Item) -> float:
    rs = item.remote_score
    if rs is None or not (0.0 <= rs <= 10.0):
        return 0.0
    return rs * REMOTE_SCALE


def jitter_term(rng: Optional[random.Random]) -> float:
    return rng.random() * JITTER_MAX if rng is not None else 0.0


def score_breakdown(
    item: Item,
    vitals: Optional[VitalsSnapshot],
    model: Mapping[str, float],
    bandit: Mapping[str, BanditEntry],
    rng: Optional[random.Random] = None,
) -> ScoreBreakdown:
    tags = item.tags
    vit, hints = vitals_terms(tags, vitals)
    terms = {
        "preference": preference_term(tags, model),
        "vitals": vit,
        "bandit": bandit_term(tags, bandit),
        "remote": remote_term(item),
        "jitter": jitter_term(rng),
    }
    return ScoreBreakdown(total=sum(terms.values()), terms=terms, hints=hints)


def score(
    item: Item,
    vitals: Optional[VitalsSnapshot],
    model: Mapping[str, float],
    bandit: Mapping[str, BanditEntry],
    rng: Optional[random.Random] = None,
) -> float:
    return score_breakdown(item, vitals, model, bandit, rng).total


def rank_pool(
    pool: Sequence[Item],
    vitals: Optional[VitalsSnapshot],
    model: Mapping[str, float],
    bandit: Mapping[str, BanditEntry],
    rng: Optional[random.Random] = None,
) -> List[RankedItem]:
    """
    Score every item and sort descending. sorted() is stable, so with no rng
    equal scores keep pool order.
    """
    scored = []
    for it in pool:
        bd = score_breakdown(it, vitals, model, bandit, rng)
        scored.append(RankedItem(item=it, score=bd.total, reason=reason_from_breakdown(it, bd, vitals)))
    return sorted(scored, key=lambda r: r.score, reverse=True)
