# vitalplate_backend/app/services/ranking/pool.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from vitalplate_backend.app.config.paths import get_catalog_path
from vitalplate_backend.app.models.recommend import Item, Preferences
from vitalplate_backend.app.utils.storage import read_json

log = logging.getLogger("vitalplate.pool")

DEFAULT_CITY = "Pune"


def flatten_partners(partners: Iterable[Dict[str, Any]], prefs: Optional[Preferences] = None) -> List[Item]:
    """
    Partner menus -> flat dish list.
      partner: {name, city, dishes|menu|items: [{title|name, description|desc, price, tags?, type?}]}
    Dishes without a title are skipped.
    """
    default_city = (prefs.city if prefs and prefs.city else None) or DEFAULT_CITY
    out: List[Item] = []
    for p in partners or []:
        if not isinstance(p, dict):
            continue
        dishes = p.get("dishes") or p.get("menu") or p.get("items") or []
        for d in dishes:
            if not isinstance(d, dict):
                continue
            title = str(d.get("title") or d.get("name") or "").strip()
            if not title:
                continue
            out.append(Item(
                title=title,
                description=d.get("description") or d.get("desc") or "",
                price=d.get("price"),
                tags=d.get("tags") or [],
                type=d.get("type"),
                partner=str(p.get("name") or "").strip() or None,
                city=p.get("city") or default_city,
            ))
    return out


def parse_items(raw: Iterable[Any]) -> List[Item]:
    items: List[Item] = []
    for r in raw or []:
        if isinstance(r, Item):
            items.append(r)
            continue
        try:
            items.append(Item.model_validate(r))
        except ValidationError as e:
            log.warning(f"[pool] skipping malformed item: {e.errors()[:1]}")
    return items


def filter_pool(pool: Iterable[Item], prefs: Optional[Preferences]) -> List[Item]:
    """
    Diet and satvik filters. Untyped items (partner dishes) pass the diet filter.
    If nothing survives, the unfiltered pool is returned so a strict preference
    never empties the list on its own.
    """
    pool = list(pool)
    if not prefs:
        return pool
    kept: List[Item] = []
    for it in pool:
        kind = (it.type or "").strip().lower() or None
        if prefs.diet and kind and kind != prefs.diet:
            continue
        if prefs.satvik and "satvik" not in it.tags:
            continue
        kept.append(it)
    if not kept and pool:
        log.info("[pool] preference filters removed every item; using the unfiltered pool")
        return pool
    return kept


def load_catalog(path: Optional[Path] = None, prefs: Optional[Preferences] = None) -> List[Item]:
    """
    Stored catalog. Either a list of items, or
    {"items": [...], "partners": [...]} mixing own dishes and partner menus.
    """
    raw = read_json(path or get_catalog_path(), [])
    if isinstance(raw, list):
        return parse_items(raw)
    if isinstance(raw, dict):
        return parse_items(raw.get("items") or []) + flatten_partners(raw.get("partners") or [], prefs)
    return []
