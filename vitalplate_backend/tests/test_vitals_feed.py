import json
import random

from fastapi.testclient import TestClient

from vitalplate_backend.app.models.recommend import VitalsSnapshot
from vitalplate_backend.app.services.vitals.feed import DRIFT_BOUNDS, VitalsFeed, drift, load_snapshot


def _write(path, obj):
    path.write_text(json.dumps(obj), encoding="utf-8")
    return path


def test_snapshot_reads_wearable_shapes(tmp_path):
    p = _write(tmp_path / "w.json", [
        {"heartRate": 60},
        {"heartRate": 101, "caloriesBurned": 450, "bp": "128/82", "analysis": {"activityLevel": "Low"}},
    ])
    snap = load_snapshot(p)
    assert snap.heart_rate == 101 and snap.calories_burned == 450
    assert (snap.bp_systolic, snap.bp_diastolic) == (128, 82)
    assert snap.activity_level == "low"
    assert snap.elevated_bp and snap.low_activity and snap.elevated_heart_rate and snap.high_burn
    assert not snap.high_risk


def test_missing_or_garbled_file_gives_none(tmp_path):
    assert load_snapshot(tmp_path / "nope.json") is None
    (tmp_path / "bad.json").write_text("{oops", encoding="utf-8")
    assert load_snapshot(tmp_path / "bad.json") is None


def test_high_risk_flag():
    assert VitalsSnapshot(bp_systolic=141).high_risk
    assert VitalsSnapshot(bp_diastolic=90).high_risk
    assert VitalsSnapshot(blood_sugar=185).high_risk
    assert not VitalsSnapshot(bp_systolic=135, bp_diastolic=85, blood_sugar=120).high_risk


def test_drift_stays_in_bounds():
    rng = random.Random(3)
    snap = VitalsSnapshot(heart_rate=119, calories_burned=10, bp_systolic=91, bp_diastolic=99, activity_level="low")
    for _ in range(200):
        snap = drift(snap, rng)
        for name, (lo, hi, _) in DRIFT_BOUNDS.items():
            assert lo <= getattr(snap, name) <= hi
        assert snap.calories_burned >= 0
        assert snap.activity_level in ("low", "moderate", "high")
        assert snap.timestamp is not None


def test_feed_refresh_replaces_snapshot(tmp_path):
    p = _write(tmp_path / "w.json", {"heartRate": 70})
    feed = VitalsFeed(p)
    first = feed.current()
    _write(p, {"heartRate": 99})
    assert feed.current() is first
    second = feed.refresh()
    assert second.heart_rate == 99 and first.heart_rate == 70


def test_simulated_feed_is_seeded(tmp_path):
    a = VitalsFeed(tmp_path / "none.json", simulate=True, rng=random.Random(5))
    b = VitalsFeed(tmp_path / "none.json", simulate=True, rng=random.Random(5))
    assert a.refresh().model_dump(exclude={"timestamp"}) == b.refresh().model_dump(exclude={"timestamp"})


def test_vitals_endpoints(client: TestClient, isolated_env):
    _write(isolated_env / "wearable_stream.json", {"heartRate": 88, "bp": "150/95"})
    r = client.get("/vitals")
    assert r.status_code == 200
    body = r.json()
    assert body["vitals"]["heartRate"] == 88
    assert body["high_risk"] is True

    _write(isolated_env / "wearable_stream.json", {"heartRate": 64})
    body = client.post("/vitals/refresh").json()
    assert body["vitals"]["heartRate"] == 64 and body["high_risk"] is False
