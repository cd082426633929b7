from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel


def stable_hash(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode(
        "utf-8",
    )
    return hashlib.sha256(encoded).hexdigest()


def model_hash(model: BaseModel, *, exclude: set[str] | None = None) -> str:
    """Hash of a model's JSON form, stable across processes."""
    return stable_hash(model.model_dump(mode="json", exclude=exclude))
