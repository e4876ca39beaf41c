from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def is_uuid(value: str | None) -> bool:
    """Return True when ``value`` is a canonical hyphenated UUID string."""
    raw = str(value or "").strip()
    try:
        parsed = uuid.UUID(raw)
    except ValueError:
        return False
    return str(parsed) == raw.lower()
