from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, List

from giftops.errors import validation_failed


_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def clean_text(value: Any) -> str:
    return str(value or "").strip()


def optional_text(value: Any) -> str | None:
    return clean_text(value) or None


def required_text(value: Any, field: str, code: str = "field_required") -> str:
    text = clean_text(value)
    if not text:
        raise validation_failed(code, field)
    return text


def parse_optional_int(value) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_optional_float(value) -> float | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def parse_int(value: str | None, default: int, min_value: int, max_value: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(min_value, min(parsed, max_value))


def positive_int(value, field: str, code: str = "quantity_invalid") -> int:
    parsed = parse_optional_int(value)
    if parsed is None or parsed < 1:
        raise validation_failed(code, field)
    return parsed


def positive_float(value, field: str, code: str = "price_invalid") -> float:
    parsed = parse_optional_float(value)
    if parsed is None or parsed <= 0:
        raise validation_failed(code, field)
    return parsed


def non_negative_float(value, field: str, code: str = "amount_invalid") -> float:
    parsed = parse_optional_float(value)
    if parsed is None or parsed < 0:
        raise validation_failed(code, field)
    return parsed


def tax_rate(value, field: str = "tax_rate", default: float | None = None) -> float | None:
    if value in (None, ""):
        return default
    parsed = parse_optional_float(value)
    if parsed is None or parsed < 0 or parsed > 100:
        raise validation_failed("tax_rate_invalid", field)
    return parsed


def iso_date(value, field: str) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        raise validation_failed("date_invalid", field) from exc


def color(value) -> str | None:
    """``#rrggbb`` (lower-cased) or ``None`` to clear the tag."""
    text = clean_text(value)
    if not text:
        return None
    if not _COLOR_RE.match(text):
        raise validation_failed("color_invalid", "color")
    return text.lower()


def coordinate(value, field: str) -> float:
    parsed = parse_optional_float(value)
    limit = 90 if field.endswith("lat") else 180
    if parsed is None or abs(parsed) > limit:
        raise validation_failed("coordinates_missing", field)
    return parsed


def parse_csv_values(value: str | None) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]
