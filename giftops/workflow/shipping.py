from __future__ import annotations

from typing import Any, Dict, Iterable, List

from giftops.errors import not_found


def _is_active(record: Dict[str, Any]) -> bool:
    return bool(record.get("active", True))


def _find_method(method_id: str, methods: Iterable[Dict[str, Any]]) -> Dict[str, Any] | None:
    return next((method for method in methods if method.get("id") == method_id), None)


def resolve_shipping_price(
    region_id: str | None,
    method_id: str,
    rates: Iterable[Dict[str, Any]],
    methods: Iterable[Dict[str, Any]],
) -> float:
    """Price of shipping ``method_id`` to ``region_id``.

    An active rate for the exact (region, method) pair overrides the method's
    base price. Inactive rates are ignored.
    """
    method = _find_method(method_id, methods)
    if method is None:
        raise not_found("shipping_method", method_id)

    for rate in rates:
        if rate.get("region_id") != region_id or rate.get("method_id") != method_id:
            continue
        if _is_active(rate):
            return float(rate["custom_price"])
    return float(method["base_price"])


def quote_shipping_methods(
    region_id: str | None,
    rates: Iterable[Dict[str, Any]],
    methods: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Active methods priced for ``region_id``, cheapest first."""
    rate_list = list(rates)
    method_list = [method for method in methods if _is_active(method)]
    quotes = []
    for method in method_list:
        quotes.append(
            {
                "method_id": method["id"],
                "name": method.get("name"),
                "description": method.get("description"),
                "duration": method.get("duration"),
                "base_price": float(method["base_price"]),
                "price": resolve_shipping_price(region_id, method["id"], rate_list, method_list),
            }
        )
    quotes.sort(key=lambda quote: (quote["price"], str(quote["name"] or "")))
    return quotes
