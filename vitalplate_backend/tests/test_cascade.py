import asyncio
import random

import httpx
import pytest

from vitalplate_backend.app.models.recommend import BanditEntry, Item, PreferenceState, Preferences, VitalsSnapshot
from vitalplate_backend.app.services.ranking.cascade import CascadeState, CycleTracker, RecommendationCascade
from vitalplate_backend.app.services.ranking.explain import MIN_FILL_REASON
from vitalplate_backend.app.services.ranking.remote_client import (
    RemoteRankingClient, RemoteResult, RemoteStatus, validate_picks,
)


class FakeClient:
    """Stands in for the oracle client; returns a canned RemoteResult."""
    def __init__(self, result=None, exc=None):
        self.result = result or RemoteResult.failure("offline")
        self.exc = exc
        self.calls = 0

    async def rank(self, pool, vitals, prefs):
        self.calls += 1
        if self.exc:
            raise self.exc
        return self.result


def _run(cascade, pool, vitals=None, prefs=None, state=None, **kw):
    return asyncio.run(cascade.run(pool, vitals, prefs, state, **kw))


def _keys(items):
    return [r.item.key for r in items]


def _success(pool, titles):
    picks = [{"title": t, "reason": f"oracle likes {t}"} for t in titles]
    items = validate_picks(picks, pool)
    return RemoteResult(status=RemoteStatus.SUCCESS if len(items) >= 5 else RemoteStatus.PARTIAL, items=items)


@pytest.mark.parametrize("n", [1, 2, 4, 5, 6, 9, 30])
def test_minimum_fill_guarantee_for_any_pool_size(n):
    pool = [Item(title=f"Dish {i}", tags=["t"] if i % 2 else []) for i in range(n)]
    cascade = RecommendationCascade(FakeClient(), min_picks=5, max_returned=12, jitter=False)
    res = _run(cascade, pool)
    assert len(res.items) >= min(5, n)
    assert len(res.items) <= max(12, min(5, n))
    assert res.state is CascadeState.DONE
    assert all(r.reason for r in res.items)


def test_fixed_inputs_give_identical_output(sample_pool, calm_vitals):
    state = PreferenceState(model={"satvik": 6.0}, bandit={"recovery": BanditEntry(shown=4, success=3)})
    prefs = Preferences(diet="veg")
    cascade = RecommendationCascade(FakeClient(), jitter=False)
    a = _run(cascade, sample_pool, calm_vitals, prefs, state)
    b = _run(cascade, sample_pool, calm_vitals, prefs, state)
    assert [(r.item.id, r.score, r.reason) for r in a.items] == [(r.item.id, r.score, r.reason) for r in b.items]

    jittery = RecommendationCascade(FakeClient(), jitter=True)
    c = _run(jittery, sample_pool, calm_vitals, prefs, state, seed=42)
    d = _run(jittery, sample_pool, calm_vitals, prefs, state, seed=42)
    assert [(r.item.id, r.score) for r in c.items] == [(r.item.id, r.score) for r in d.items]


def test_partial_answer_promotes_remote_items(big_pool):
    remote = _success(big_pool, ["Dish 17"])
    cascade = RecommendationCascade(FakeClient(remote), min_picks=5, jitter=False)
    res = _run(cascade, big_pool)
    assert res.outcome is CascadeState.PARTIAL_SUCCESS
    titles = [r.item.title for r in res.items]
    assert titles[0] == "Dish 17"
    assert titles.count("Dish 17") == 1
    assert len(res.items) >= 5
    assert res.items[0].reason == "oracle likes Dish 17"


def test_output_is_always_a_subset_of_the_pool(sample_pool):
    pool_keys = {it.key for it in sample_pool}
    hallucinated = RemoteResult(
        status=RemoteStatus.PARTIAL,
        items=validate_picks([{"title": "Unicorn Steak"}, {"title": "Tofu Stir Fry"}], sample_pool),
    )
    for client in (FakeClient(), FakeClient(hallucinated), FakeClient(_success(sample_pool, [it.title for it in sample_pool]))):
        res = _run(RecommendationCascade(client, jitter=False), sample_pool)
        assert set(_keys(res.items)) <= pool_keys
        assert len(set(_keys(res.items))) == len(res.items)


def test_timeout_falls_back_with_reasons(sample_pool):
    def _timeout(request):
        raise httpx.ReadTimeout("slow", request=request)
    client = RemoteRankingClient("https://ranker.test/rank", transport=httpx.MockTransport(_timeout))
    res = _run(RecommendationCascade(client, jitter=False), sample_pool, VitalsSnapshot(heart_rate=105))
    assert res.outcome is CascadeState.FAILURE
    assert len(res.items) >= min(5, len(sample_pool))
    assert all(r.reason.strip() for r in res.items)
    assert res.trace.remote["status"] == "failure"
    assert "local_fallback" in res.trace.states


def test_single_pick_from_picks_object(big_pool, oracle):
    client = RemoteRankingClient("https://ranker.test/rank", transport=oracle({"picks": [{"title": "Dish 07"}]}))
    res = _run(RecommendationCascade(client, min_picks=5, jitter=False), big_pool)
    assert res.outcome is CascadeState.PARTIAL_SUCCESS
    assert "Dish 07" in [r.item.title for r in res.items]
    assert len(res.items) >= 5


def test_success_path_skips_local_steps(sample_pool):
    remote = _success(sample_pool, [it.title for it in reversed(sample_pool)])
    res = _run(RecommendationCascade(FakeClient(remote), jitter=False), sample_pool)
    assert res.outcome is CascadeState.SUCCESS
    assert [r.item.title for r in res.items] == [it.title for it in reversed(sample_pool)]
    assert res.trace.states == ["remote_attempt", "success", "done"]


def test_client_exception_is_treated_as_failure(sample_pool):
    res = _run(RecommendationCascade(FakeClient(exc=RuntimeError("bug")), jitter=False), sample_pool)
    assert res.outcome is CascadeState.FAILURE
    assert len(res.items) >= 5


def test_empty_pool_skips_everything():
    client = FakeClient()
    res = _run(RecommendationCascade(client), [])
    assert res.empty_pool and res.items == []
    assert res.state is CascadeState.DONE
    assert client.calls == 0


def test_minimum_fill_step_in_isolation(sample_pool):
    cascade = RecommendationCascade(FakeClient(), min_picks=5, jitter=False)
    first = _run(cascade, sample_pool[:1]).items
    filled = cascade.minimum_fill(first, sample_pool, None, PreferenceState(), None)
    assert len(filled) == 5
    assert filled[0].item.key == first[0].item.key
    assert all(r.reason == MIN_FILL_REASON for r in filled[1:])
    # already enough: untouched
    assert cascade.minimum_fill(filled, sample_pool, None, PreferenceState(), None) == filled


def test_classify_and_finalize():
    cascade = RecommendationCascade(FakeClient(), min_picks=5, max_returned=6)
    pool = [Item(title=f"D{i}") for i in range(10)]
    assert cascade.classify(RemoteResult.failure("x")) is CascadeState.FAILURE
    assert cascade.classify(_success(pool, ["D1", "D2"])) is CascadeState.PARTIAL_SUCCESS
    assert cascade.classify(_success(pool, [f"D{i}" for i in range(5)])) is CascadeState.SUCCESS
    ranked = cascade.local_fallback(pool, None, None, PreferenceState(), random.Random(1))
    assert len(ranked) == 10
    assert len(cascade.finalize(ranked, len(pool))) == 6


def test_cycle_tracker_marks_older_cycles_stale():
    t = CycleTracker()
    a = t.begin()
    b = t.begin()
    assert b > a
    assert not t.is_current(a)
    assert t.is_current(b)
    assert t.latest == b


def test_duplicate_pool_entries_do_not_break_the_floor():
    idli = Item(title="Idli")
    res = _run(RecommendationCascade(FakeClient(), jitter=False), [idli] * 3)
    # three copies are one distinct dish
    assert len(res.items) == 1
    assert res.trace.meta["pool_size"] == 1
    assert res.trace.meta["duplicates_dropped"] == 2

    pool = [Item(title="Idli"), Item(title="IDLI "), Item(title="Dosa"), Item(title="Idli", partner="Cafe A"),
            Item(title="Poha"), Item(title="Dosa")]
    res = _run(RecommendationCascade(FakeClient(), min_picks=5, jitter=False), pool)
    keys = _keys(res.items)
    assert len(keys) == len(set(keys)) == 4
    assert set(keys) == {("idli", ""), ("dosa", ""), ("idli", "cafe a"), ("poha", "")}


def test_minimum_fill_counts_distinct_pool_items(sample_pool):
    cascade = RecommendationCascade(FakeClient(), min_picks=5, jitter=False)
    doubled = sample_pool[:3] + sample_pool[:3]
    filled = cascade.minimum_fill([], doubled, None, PreferenceState(), None)
    assert len(filled) == 3
    assert len(set(_keys(filled))) == 3


def test_success_path_order_is_the_oracle_rank_not_the_score(sample_pool):
    # learned weights favour the oracle's last picks; the oracle order still wins
    oracle_titles = [it.title for it in sample_pool[:5]]
    state = PreferenceState(model={"low-sodium": 40.0, "high-protein-snack": -20.0, "recovery": -20.0})
    remote = _success(sample_pool, oracle_titles)
    res = _run(RecommendationCascade(FakeClient(remote), jitter=False), sample_pool, state=state)
    assert res.outcome is CascadeState.SUCCESS
    assert [r.item.title for r in res.items] == oracle_titles
    scores = [r.score for r in res.items]
    assert scores != sorted(scores, reverse=True)
    assert all(r.reason == f"oracle likes {r.item.title}" for r in res.items)
