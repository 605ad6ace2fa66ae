# vitalplate_backend/app/config/__init__.py
from __future__ import annotations

# Re-export config surface expected by callers across the app.

# Ranking knobs and env flags live in manifest.py
from .manifest import (
    RankingSettings,
    get_ranking_settings,
    validate_manifest,
)

# Path helpers live in paths.py
from .paths import (
    REPO_ROOT,
    APP_ROOT,
    get_data_dir,
    get_rules_dir,
    get_vitals_path,
    get_catalog_path,
    get_state_dir,
    resolve_rules_file,
    ensure_data_dir_exists,
)

__all__ = [
    # manifest
    "RankingSettings",
    "get_ranking_settings",
    "validate_manifest",
    # paths
    "REPO_ROOT",
    "APP_ROOT",
    "get_data_dir",
    "get_rules_dir",
    "get_vitals_path",
    "get_catalog_path",
    "get_state_dir",
    "resolve_rules_file",
    "ensure_data_dir_exists",
]
