import unittest

from giftops.errors import NotFoundError
from giftops.policies import ADMIN, CUSTOMER
from giftops.workflow.shipping import quote_shipping_methods, resolve_shipping_price
from tests.helpers.app_case import AppTestCase


METHODS = [
    {"id": "std", "name": "Standard", "base_price": 300.0, "active": True},
    {"id": "exp", "name": "Express", "base_price": 600.0, "active": True},
    {"id": "old", "name": "Legacy", "base_price": 50.0, "active": False},
]


class ResolveShippingPriceTest(unittest.TestCase):
    def test_base_price_without_rate(self) -> None:
        self.assertEqual(resolve_shipping_price("nbi", "std", [], METHODS), 300.0)

    def test_active_rate_overrides_base_price(self) -> None:
        rates = [{"region_id": "nbi", "method_id": "std", "custom_price": 150, "active": True}]

        self.assertEqual(resolve_shipping_price("nbi", "std", rates, METHODS), 150.0)
        self.assertEqual(resolve_shipping_price("msa", "std", rates, METHODS), 300.0)
        self.assertEqual(resolve_shipping_price("nbi", "exp", rates, METHODS), 600.0)

    def test_inactive_rate_is_ignored(self) -> None:
        rates = [{"region_id": "nbi", "method_id": "std", "custom_price": 150, "active": False}]

        self.assertEqual(resolve_shipping_price("nbi", "std", rates, METHODS), 300.0)

    def test_free_shipping_rate_is_honoured(self) -> None:
        rates = [{"region_id": "nbi", "method_id": "exp", "custom_price": 0, "active": True}]

        self.assertEqual(resolve_shipping_price("nbi", "exp", rates, METHODS), 0.0)

    def test_unknown_method(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            resolve_shipping_price("nbi", "missing", [], METHODS)

        self.assertEqual(ctx.exception.code, "shipping_method_not_found")

    def test_quote_lists_active_methods_cheapest_first(self) -> None:
        rates = [{"region_id": "nbi", "method_id": "exp", "custom_price": 250, "active": True}]

        quotes = quote_shipping_methods("nbi", rates, METHODS)

        self.assertEqual([(quote["name"], quote["price"]) for quote in quotes], [("Express", 250.0), ("Standard", 300.0)])


class ShippingApiTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin_id = self.seed_user(ADMIN)

    def _create(self, kind: str, payload: dict):
        return self.post_as(self.admin_id, f"/api/shipping/{kind}", payload)

    def test_admin_builds_rate_table_and_quote_is_public(self) -> None:
        region = self._create("regions", {"name": "Nairobi CBD", "county": "Nairobi", "towns": ["CBD", " ", "Upper Hill"]})
        self.assertEqual(region.status_code, 201, msg=region.get_data(as_text=True))
        self.assertEqual(region.get_json()["towns"], ["CBD", "Upper Hill"])
        region_id = region.get_json()["id"]
        standard = self._create("methods", {"name": "Standard", "duration": "1-2 days", "base_price": 300}).get_json()
        express = self._create("methods", {"name": "Express", "duration": "Same day", "base_price": 600}).get_json()
        rate = self._create("rates", {"region_id": region_id, "method_id": express["id"], "custom_price": 200})
        self.assertEqual(rate.status_code, 201)

        self.logout()
        response = self.client.get(f"/api/shipping/quote?region_id={region_id}")

        self.assertEqual(response.status_code, 200)
        methods = response.get_json()["methods"]
        self.assertEqual([method["method_id"] for method in methods], [express["id"], standard["id"]])
        self.assertEqual(methods[0]["price"], 200)
        self.assertEqual(methods[1]["price"], 300)

    def test_duplicate_rate_conflicts(self) -> None:
        ids = self.seed_shipping(rate_price=100)

        response = self._create(
            "rates",
            {"region_id": ids["region_id"], "method_id": ids["method_id"], "custom_price": 120},
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "shipping_rate_exists")

    def test_deactivating_rate_restores_base_price(self) -> None:
        ids = self.seed_shipping(base_price=300, rate_price=100)
        self.login(self.admin_id)

        response = self.client.patch(f"/api/shipping/rates/{ids['rate_id']}", json={"active": False})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()["active"])
        quote = self.client.get(f"/api/shipping/quote?region_id={ids['region_id']}").get_json()
        self.assertEqual(quote["methods"][0]["price"], 300)

    def test_rate_requires_existing_region(self) -> None:
        ids = self.seed_shipping()

        response = self._create("rates", {"region_id": "nowhere", "method_id": ids["method_id"], "custom_price": 10})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "shipping_region_not_found")

    def test_method_price_cannot_be_negative(self) -> None:
        response = self._create("methods", {"name": "Broken", "base_price": -1})

        self.assertEqual(response.status_code, 400)

    def test_unknown_kind(self) -> None:
        self.assertEqual(self._create("planets", {"name": "Mars"}).status_code, 400)

    def test_delete_method(self) -> None:
        ids = self.seed_shipping()
        self.login(self.admin_id)

        self.assertEqual(self.client.delete(f"/api/shipping/methods/{ids['method_id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/shipping/methods/{ids['method_id']}").status_code, 404)

    def test_record_admin_requires_admin(self) -> None:
        customer = self.seed_user(CUSTOMER)

        response = self.post_as(customer, "/api/shipping/regions", {"name": "Mombasa"})

        self.assertEqual(response.status_code, 403)

    def test_record_listing_requires_session(self) -> None:
        self.assertEqual(self.client.get("/api/shipping/rates").status_code, 401)


if __name__ == "__main__":
    unittest.main()
