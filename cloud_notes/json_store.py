"""JSON object files shared by the settings and the auth session store."""
from __future__ import annotations

import json
import os
import tempfile
from typing import Any


def read_json_dict(path: str) -> dict[str, Any]:
    """Load a JSON object from `path`; a missing file or non-object root reads as {}.

    Raises OSError / ValueError for unreadable or malformed files.
    """
    if not os.path.exists(path):
        return {}
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def write_json_atomic(path: str, data: dict[str, Any]) -> None:
    """Write through a temporary file and rename, so readers never see half a file.

    The temporary file is created owner-only (mkstemp), which the rename keeps.
    """
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(suffix=".json", prefix=".tmp_", dir=parent or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
