# vitalplate_backend/app/services/data_stores/__init__.py
"""
Unified export surface for the learned-state store.

Import from here in routers/engine code, e.g.:
    from vitalplate_backend.app.services.data_stores import (
        PreferenceStore, get_preference_store, clamp,
    )
"""

from __future__ import annotations

# ---- Preference model + bandit counters ----
from .preferences import (  # noqa: F401
    BANDIT_BLOB,
    MODEL_BLOB,
    PreferenceStore,
    clamp,
    get_preference_store,
)

__all__ = [
    "BANDIT_BLOB", "MODEL_BLOB", "PreferenceStore", "clamp", "get_preference_store",
]
