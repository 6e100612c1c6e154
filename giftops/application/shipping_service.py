from __future__ import annotations

from typing import Any, Dict, Tuple

from giftops.db import new_id
from giftops.domain.contracts import Actor
from giftops.errors import ConflictError, not_found, validation_failed
from giftops.infrastructure.repositories import ShippingRepository
from giftops.policies import ADMIN, require_roles
from giftops.validation import clean_text, non_negative_float, optional_text, required_text
from giftops.workflow.shipping import quote_shipping_methods, resolve_shipping_price


# kind -> (table, entity name used in errors)
SHIPPING_KINDS: Dict[str, Tuple[str, str]] = {
    "regions": ("shipping_regions", "shipping_region"),
    "methods": ("shipping_methods", "shipping_method"),
    "rates": ("shipping_rates", "shipping_rate"),
}


class ShippingService:
    def __init__(self, repository: ShippingRepository | None = None) -> None:
        self.repository = repository or ShippingRepository()

    def price_for(self, db, region_id: str | None, method_id: str) -> Tuple[float, dict]:
        """Resolved price and the method row for a (region, method) pair."""
        method = self.repository.get(db, "shipping_methods", method_id)
        if method is None or not method.get("active"):
            raise not_found("shipping_method", method_id)
        price = resolve_shipping_price(
            region_id,
            method_id,
            self.repository.rates_for_region(db, region_id),
            [method],
        )
        return price, method

    def quote(self, db, region_id: str | None) -> list[dict]:
        return quote_shipping_methods(
            region_id,
            self.repository.rates_for_region(db, region_id),
            self.repository.list_all(db, "shipping_methods", active_only=True),
        )

    def list_records(self, db, kind: str, *, active_only: bool = False) -> list[dict]:
        table, _entity = self._kind(kind)
        return self.repository.list_all(db, table, active_only=active_only)

    def create(self, db, actor: Actor, kind: str, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        table, entity = self._kind(kind)
        record = self._clean(db, kind, payload, partial=False)
        record["id"] = new_id()
        with db.transaction():
            if kind == "rates" and self.repository.find_rate(db, record["region_id"], record["method_id"]):
                raise ConflictError(code="shipping_rate_exists", message_key="shipping_rate_exists")
            self.repository.create(db, table, record)
        return self.repository.get(db, table, record["id"])

    def update(self, db, actor: Actor, kind: str, record_id: str, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        table, entity = self._kind(kind)
        if self.repository.get(db, table, record_id) is None:
            raise not_found(entity, record_id)
        record = self._clean(db, kind, payload, partial=True)
        with db.transaction():
            if record and not self.repository.update(db, table, record_id, record):
                raise not_found(entity, record_id)
        return self.repository.get(db, table, record_id)

    def delete(self, db, actor: Actor, kind: str, record_id: str) -> None:
        require_roles(actor.role, ADMIN)
        table, entity = self._kind(kind)
        with db.transaction():
            if not self.repository.delete(db, table, record_id):
                raise not_found(entity, record_id)

    @staticmethod
    def _kind(kind: str) -> Tuple[str, str]:
        if kind not in SHIPPING_KINDS:
            raise validation_failed("action_invalid", "kind")
        return SHIPPING_KINDS[kind]

    def _clean(self, db, kind: str, payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        record: Dict[str, Any] = {}

        def wanted(key: str) -> bool:
            return not partial or key in payload

        if kind in {"regions", "methods"} and wanted("name"):
            record["name"] = required_text(payload.get("name"), "name")
        if kind == "regions":
            if wanted("county"):
                record["county"] = clean_text(payload.get("county"))
            if wanted("towns"):
                towns = payload.get("towns") or []
                if not isinstance(towns, list):
                    raise validation_failed("validation_error", "towns")
                record["towns"] = [clean_text(town) for town in towns if clean_text(town)]
        if kind == "methods":
            if wanted("description"):
                record["description"] = clean_text(payload.get("description"))
            if wanted("duration"):
                record["duration"] = clean_text(payload.get("duration"))
            if wanted("base_price"):
                record["base_price"] = non_negative_float(payload.get("base_price"), "base_price")
        if kind == "rates":
            if wanted("region_id"):
                region_id = required_text(payload.get("region_id"), "region_id")
                if self.repository.get(db, "shipping_regions", region_id) is None:
                    raise not_found("shipping_region", region_id)
                record["region_id"] = region_id
            if wanted("method_id"):
                method_id = required_text(payload.get("method_id"), "method_id")
                if self.repository.get(db, "shipping_methods", method_id) is None:
                    raise not_found("shipping_method", method_id)
                record["method_id"] = method_id
            if wanted("custom_price"):
                record["custom_price"] = non_negative_float(payload.get("custom_price"), "custom_price")
            if wanted("notes"):
                record["notes"] = optional_text(payload.get("notes"))
        if "active" in payload or not partial:
            record["active"] = bool(payload.get("active", True))
        return record
