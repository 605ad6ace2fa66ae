from __future__ import annotations
import json, os, tempfile
from pathlib import Path
from typing import Any, Union

Pathish = Union[str, Path]

def _as_path(p: Pathish) -> Path:
    return p if isinstance(p, Path) else Path(p)

def ensure_dir(p: Pathish) -> Path:
    path = _as_path(p)
    target = (path.parent if path.suffix else path)
    target.mkdir(parents=True, exist_ok=True)
    return target

def read_json(path: Pathish, default: Any = None, *, encoding: str = "utf-8") -> Any:
    """
    Safe JSON reader. Returns `default` if the file is missing, empty or invalid.
    """
    p = _as_path(path)
    if not (p.exists() and p.is_file()):
        return default
    try:
        raw = p.read_text(encoding=encoding)
        return json.loads(raw) if raw.strip() else default
    except (OSError, ValueError):
        return default

def write_json(path: Pathish, obj: Any, *, encoding: str = "utf-8", indent: int = 2) -> None:
    """
    Full-overwrite JSON write via a sibling temp file + os.replace.
    Readers never observe a half-written blob.
    """
    p = _as_path(path)
    ensure_dir(p)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=p.parent, encoding=encoding, suffix=".tmp") as tf:
        tf.write(json.dumps(obj, ensure_ascii=False, indent=indent))
        tmp = Path(tf.name)
    os.replace(tmp, p)
