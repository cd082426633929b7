from __future__ import annotations

import random
import secrets
import string
from uuid import uuid4


def generate_room_code(rng: random.Random | None = None) -> str:
    """Three uppercase letters followed by three digits, e.g. ``KQZ042``."""
    rng = rng or random.SystemRandom()
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(3))
    digits = "".join(rng.choice(string.digits) for _ in range(3))
    return letters + digits


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def new_entity_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"
