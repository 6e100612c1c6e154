from __future__ import annotations

from typing import Any, Dict, List, Tuple

from giftops.errors import ValidationError
from giftops.validation import parse_optional_float


OPTION_TYPES = ("dropdown", "text", "checkbox", "image_upload", "color_picker", "checkbox_group")


def effective_options(product: Dict[str, Any], group: Dict[str, Any] | None) -> List[Dict[str, Any]]:
    """Group options win when the product references a non-empty group."""
    if product.get("customization_group_id") and group and group.get("options"):
        return list(group["options"])
    return list(product.get("customization_options") or [])


def _choice_adjustment(option: Dict[str, Any], value: Any) -> float:
    for choice in option.get("choices") or []:
        if choice.get("value") == value:
            return float(choice.get("price_adjustment") or 0)
    raise ValidationError(
        code="customization_invalid",
        message_key="validation_error",
        payload={"option_id": option.get("id"), "value": value},
    )


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value is False


def price_customizations(
    options: List[Dict[str, Any]],
    selected: Dict[str, Any] | None,
) -> Tuple[Dict[str, Any], float]:
    """Validate a customization selection and return ``(clean_selection, unit_adjustment)``.

    Keys that do not match an option are dropped.
    """
    selected = dict(selected or {})
    clean: Dict[str, Any] = {}
    adjustment = 0.0

    for option in options:
        option_id = option.get("id")
        value = selected.get(option_id)
        if _is_blank(value):
            if option.get("required"):
                raise ValidationError(
                    code="customization_required",
                    message_key="customization_required",
                    payload={"option_id": option_id, "label": option.get("label")},
                )
            continue

        option_type = option.get("type")
        if option_type == "dropdown":
            adjustment += _choice_adjustment(option, value)
        elif option_type == "checkbox":
            adjustment += float(option.get("price_adjustment_if_checked") or 0)
            value = True
        elif option_type == "checkbox_group":
            values = value if isinstance(value, list) else [value]
            for item in values:
                adjustment += _choice_adjustment(option, item)
            value = list(values)
        clean[option_id] = value

    return clean, round(adjustment, 2)


def _adjustment_amount(value: Any, option_id: str) -> float:
    if value in (None, ""):
        return 0.0
    parsed = parse_optional_float(value)
    if parsed is None:
        raise ValidationError(
            code="customization_invalid",
            message_key="validation_error",
            payload={"option_id": option_id, "field": "price_adjustment"},
        )
    return parsed


def normalize_options(raw_options: Any) -> List[Dict[str, Any]]:
    if raw_options is None:
        return []
    if not isinstance(raw_options, list):
        raise ValidationError(code="customization_invalid", message_key="validation_error")

    options = []
    for raw in raw_options:
        if not isinstance(raw, dict):
            raise ValidationError(code="customization_invalid", message_key="validation_error")
        option_id = str(raw.get("id") or "").strip()
        option_type = str(raw.get("type") or "").strip()
        if not option_id or option_type not in OPTION_TYPES:
            raise ValidationError(
                code="customization_invalid",
                message_key="validation_error",
                payload={"option_id": option_id or None, "type": option_type or None},
            )
        option = {
            "id": option_id,
            "label": str(raw.get("label") or option_id),
            "type": option_type,
            "required": bool(raw.get("required", False)),
        }
        if option_type in {"dropdown", "checkbox_group"}:
            option["choices"] = [
                {
                    "value": str(choice.get("value")),
                    "label": choice.get("label") or str(choice.get("value")),
                    "price_adjustment": _adjustment_amount(choice.get("price_adjustment"), option_id),
                }
                for choice in raw.get("choices") or []
                if isinstance(choice, dict) and choice.get("value") is not None
            ]
        if option_type == "checkbox":
            option["checkbox_label"] = raw.get("checkbox_label")
            option["price_adjustment_if_checked"] = _adjustment_amount(
                raw.get("price_adjustment_if_checked"), option_id
            )
        if option_type == "text":
            option["max_length"] = raw.get("max_length")
            option["placeholder"] = raw.get("placeholder")
        options.append(option)
    return options
