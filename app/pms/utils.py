from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from flask import request

from app.pms.errors import BadRequest

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def json_body() -> dict[str, Any]:
    """Parsed JSON object body of the current request (empty dict when absent)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value))


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_custom_fields(raw: Any) -> tuple[dict | None, str | None]:
    """Validate a free-form JSON object (device specifications, item snapshot specs)."""
    if raw is None:
        return None, None
    if not isinstance(raw, dict):
        return None, "must be a JSON object"
    return raw, None


def parse_iso_datetime(raw: Any) -> datetime | None:
    """
    Accept ``YYYY-MM-DD`` or a full ISO-8601 timestamp (a trailing ``Z`` is allowed).
    Raises ValueError for anything else.
    """
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ValueError(f"Invalid date: {raw!r}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        value = datetime.combine(date.fromisoformat(text), datetime.min.time())
    # Stored naive (UTC) like every other timestamp column.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def query_int(name: str, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise BadRequest(f"{name} must be an integer") from None
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value
