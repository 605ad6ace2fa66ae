from __future__ import annotations
import json
import os
from typing import Callable, List

import httpx
import pytest
from fastapi.testclient import TestClient

from vitalplate_backend.app.main import app
from vitalplate_backend.app.models.recommend import Item, VitalsSnapshot
from vitalplate_backend.app.services.router_helpers import recommend_helpers
from vitalplate_backend.app.services.vitals import feed as vitals_feed

# --- Existing client (used for API tests) ---
@pytest.fixture(scope="session")
def client():
    return TestClient(app)

# --- Data tree override ---
@pytest.fixture(scope="session", autouse=True)
def tmp_data_tree(tmp_path_factory):
    tmp = tmp_path_factory.mktemp("data_tree")
    os.environ["DATA_DIR"] = str(tmp)
    return tmp

# --- Per-test isolation: own DATA_DIR, no oracle, no jitter ---
@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))
    monkeypatch.setenv("VITALPLATE_JITTER", "0")
    for name in ("VITALPLATE_RANKER_URL", "VITALPLATE_RANKER_TOKEN", "VITALPLATE_VITALS_PATH",
                 "VITALPLATE_CATALOG_PATH", "VITALPLATE_SIMULATE_VITALS"):
        monkeypatch.delenv(name, raising=False)
    recommend_helpers.reset_recommend_state()
    vitals_feed.reset_vitals_feed()
    yield data
    recommend_helpers.reset_recommend_state()
    vitals_feed.reset_vitals_feed()

# --- Candidate pools ---
def make_item(title: str, tags=(), **kw) -> Item:
    return Item(title=title, tags=list(tags), **kw)

@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item

@pytest.fixture
def sample_pool() -> List[Item]:
    return [
        make_item("Paneer Tikka Bowl", ["high-protein-snack", "recovery"], type="veg", price=220),
        make_item("Moong Dal Khichdi", ["satvik", "light"], type="veg", price=150),
        make_item("Grilled Chicken Salad", ["low-carb", "light-clean"], type="nonveg", price=280),
        make_item("Steamed Fish with Greens", ["low-sodium", "light-clean"], type="nonveg", price=320),
        make_item("Sprouts Chaat", ["satvik", "low-sodium"], type="veg", price=90),
        make_item("Egg White Omelette", ["high-protein-snack"], type="nonveg", price=120),
        make_item("Tofu Stir Fry", ["recovery", "low-carb"], type="veg", price=240),
        make_item("Vegetable Clear Soup", ["light", "low-sodium"], type="veg", price=110),
    ]

@pytest.fixture
def big_pool() -> List[Item]:
    return [make_item(f"Dish {i:02d}", ["plain"]) for i in range(20)]

@pytest.fixture
def calm_vitals() -> VitalsSnapshot:
    return VitalsSnapshot(heart_rate=72, calories_burned=150, bp_systolic=118, bp_diastolic=76, activity_level="moderate")

# --- Fake ranking oracle ---
@pytest.fixture
def oracle() -> Callable[..., httpx.MockTransport]:
    """
    oracle(body) -> transport answering every POST with `body` (200, JSON).
    oracle(handler=fn) -> transport using a custom handler.
    Captured requests land on transport.requests.
    """
    def _make(body=None, *, status_code: int = 200, handler=None):
        seen: list = []

        def _default(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content or b"{}"))
            if handler is not None:
                return handler(request)
            return httpx.Response(status_code, json=body)

        transport = httpx.MockTransport(_default)
        transport.requests = seen
        return transport
    return _make
