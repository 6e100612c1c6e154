from __future__ import annotations

from typing import Any, Dict

from giftops.db import new_id
from giftops.domain.contracts import Actor
from giftops.errors import not_found, validation_failed
from giftops.infrastructure.repositories import CustomizationGroupRepository, ProductRepository
from giftops.policies import ADMIN, require_roles
from giftops.validation import clean_text, non_negative_float, optional_text, parse_optional_int, positive_float, required_text
from giftops.workflow.customization import effective_options, normalize_options


class CatalogService:
    def __init__(
        self,
        products: ProductRepository | None = None,
        groups: CustomizationGroupRepository | None = None,
    ) -> None:
        self.products = products or ProductRepository()
        self.groups = groups or CustomizationGroupRepository()

    # Products

    def list_products(self, db, *, include_unpublished: bool = False) -> list[dict]:
        products = self.products.list_products(db, published_only=not include_unpublished)
        groups = {group["id"]: group for group in self.groups.list_groups(db)}
        return [self._with_options(product, groups.get(product.get("customization_group_id"))) for product in products]

    def get_product(self, db, product_id: str, *, include_unpublished: bool = False) -> dict:
        product = self.products.get(db, product_id)
        if product is None or (not product.get("published") and not include_unpublished):
            raise not_found("product", product_id)
        return self._with_options(product, self.groups.get(db, product.get("customization_group_id")))

    def create_product(self, db, actor: Actor, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        record = self._clean_product(db, payload, partial=False)
        record["id"] = new_id()
        with db.transaction():
            self.products.create(db, record)
        return self.get_product(db, record["id"], include_unpublished=True)

    def update_product(self, db, actor: Actor, product_id: str, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        record = self._clean_product(db, payload, partial=True)
        with db.transaction():
            if not self.products.update(db, product_id, record):
                raise not_found("product", product_id)
        return self.get_product(db, product_id, include_unpublished=True)

    def delete_product(self, db, actor: Actor, product_id: str) -> None:
        require_roles(actor.role, ADMIN)
        with db.transaction():
            if not self.products.delete(db, product_id):
                raise not_found("product", product_id)

    # Customization groups

    def list_groups(self, db) -> list[dict]:
        return self.groups.list_groups(db)

    def create_group(self, db, actor: Actor, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        name = required_text(payload.get("name"), "name")
        options = normalize_options(payload.get("options") or [])
        group_id = new_id()
        with db.transaction():
            self.groups.create(db, group_id, name, options)
        return self.groups.get(db, group_id)

    def update_group(self, db, actor: Actor, group_id: str, payload: Dict[str, Any]) -> dict:
        require_roles(actor.role, ADMIN)
        name = required_text(payload.get("name"), "name") if "name" in payload else None
        options = normalize_options(payload.get("options")) if "options" in payload else None
        with db.transaction():
            if not self.groups.update(db, group_id, name=name, options=options):
                raise not_found("customization_group", group_id)
        return self.groups.get(db, group_id)

    def delete_group(self, db, actor: Actor, group_id: str) -> None:
        require_roles(actor.role, ADMIN)
        with db.transaction():
            if not self.groups.delete(db, group_id):
                raise not_found("customization_group", group_id)

    # Internals

    @staticmethod
    def _with_options(product: dict, group: dict | None) -> dict:
        product["effective_customization_options"] = effective_options(product, group)
        return product

    def _clean_product(self, db, payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        record: Dict[str, Any] = {}

        def wanted(key: str) -> bool:
            return not partial or key in payload

        if wanted("name"):
            record["name"] = required_text(payload.get("name"), "name")
        if wanted("description"):
            record["description"] = clean_text(payload.get("description"))
        if wanted("price"):
            record["price"] = positive_float(payload.get("price"), "price")
        if "supplier_price" in payload:
            raw = payload.get("supplier_price")
            record["supplier_price"] = None if raw in (None, "") else non_negative_float(raw, "supplier_price")
        if wanted("published"):
            record["published"] = bool(payload.get("published", True))
        if wanted("image_url"):
            record["image_url"] = optional_text(payload.get("image_url"))
        if wanted("stock"):
            stock = parse_optional_int(payload.get("stock", 0))
            if stock is None or stock < 0:
                raise validation_failed("quantity_invalid", "stock")
            record["stock"] = stock
        if wanted("categories"):
            categories = payload.get("categories") or []
            if not isinstance(categories, list):
                raise validation_failed("validation_error", "categories")
            record["categories"] = [clean_text(item) for item in categories if clean_text(item)]
        if wanted("supplier"):
            record["supplier"] = optional_text(payload.get("supplier"))
        if wanted("customization_options"):
            record["customization_options"] = normalize_options(payload.get("customization_options") or [])
        if wanted("customization_group_id"):
            group_id = optional_text(payload.get("customization_group_id"))
            if group_id and self.groups.get(db, group_id) is None:
                raise not_found("customization_group", group_id)
            record["customization_group_id"] = group_id
        return record
