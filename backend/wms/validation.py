from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .errors import ValidationError


# Maximum unit cost: $9,999,999.99 (999,999,999 cents)
MAX_COST_CENTS = 999_999_999


def coerce_int(value: Any, field: str, *, minimum: int | None = None, allow_none: bool = False) -> int | None:
    """
    Strict integer coercion for client input.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation.
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def coerce_line(raw: dict) -> dict:
    """Normalize one document line payload."""
    if not isinstance(raw, dict):
        raise ValidationError("Each line must be an object")

    unit_cost = coerce_int(raw.get("unit_cost_cents", 0), "unit_cost_cents", minimum=0)
    if unit_cost > MAX_COST_CENTS:
        raise ValidationError(f"unit_cost_cents must be <= {MAX_COST_CENTS}")

    condition = raw.get("condition")
    if condition is not None and condition not in ("good", "damaged"):
        raise ValidationError("condition must be 'good' or 'damaged'")

    return {
        "item_id": coerce_int(raw.get("item_id"), "item_id", minimum=1),
        "quantity": coerce_int(raw.get("quantity"), "quantity", minimum=1),
        "unit_cost_cents": unit_cost,
        "condition": condition,
    }


def parse_iso_datetime(value: str | None, field: str) -> datetime | None:
    """Parse an ISO-8601 timestamp ('Z' accepted) to naive UTC."""
    if value is None or value == "":
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def json_object(data: Any) -> dict:
    """Request body as a dict; a missing body reads as {}."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
