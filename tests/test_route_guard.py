import unittest
from unittest import mock
from urllib.parse import parse_qs, urlparse

import giftops.routes.page_routes as page_routes
from giftops.db import get_db
from giftops.policies import (
    ADMIN,
    CUSTOMER,
    DISPATCH_MANAGER,
    FINANCE_MANAGER,
    RIDER,
    SERVICE_MANAGER,
    SUPPLIER,
    resolve_route_roles,
    route_allows,
    route_requires_login,
)
from tests.helpers.app_case import AppTestCase


class RouteAccessTableTest(unittest.TestCase):
    def test_longest_prefix_wins(self) -> None:
        self.assertEqual(resolve_route_roles("/admin/users"), frozenset({ADMIN}))
        self.assertEqual(resolve_route_roles("/api/catalog/products"), frozenset())
        self.assertIsNone(resolve_route_roles("/login"))

    def test_prefix_matches_whole_segments(self) -> None:
        self.assertTrue(route_allows("/administrator", None))
        self.assertFalse(route_allows("/admin", CUSTOMER))

    def test_role_matrix(self) -> None:
        self.assertTrue(route_allows("/admin/users", ADMIN))
        self.assertFalse(route_allows("/admin/users", FINANCE_MANAGER))
        self.assertTrue(route_allows("/finance/invoices", FINANCE_MANAGER))
        self.assertTrue(route_allows("/rider", RIDER))
        self.assertFalse(route_allows("/rider", ADMIN))
        self.assertTrue(route_allows("/supplier", SUPPLIER))
        self.assertTrue(route_allows("/tasks", "Engraving"))
        self.assertTrue(route_allows("/service", SERVICE_MANAGER))
        self.assertFalse(route_allows("/dispatch", RIDER))
        self.assertTrue(route_allows("/dispatch", DISPATCH_MANAGER))

    def test_public_api_paths(self) -> None:
        self.assertTrue(route_allows("/api/track/orders/o-1", None))
        self.assertTrue(route_allows("/api/shipping/quote", None))
        self.assertFalse(route_allows("/api/shipping/rates", None))
        self.assertTrue(route_requires_login("/api/orders"))
        self.assertFalse(route_requires_login("/api/auth/login"))


class RouteGuardTest(AppTestCase):
    def test_anonymous_admin_page_redirects_without_loading_data(self) -> None:
        with mock.patch.object(page_routes._USER_SERVICE, "list_users") as list_users:
            response = self.client.get("/admin/users")

        self.assertEqual(response.status_code, 302)
        self.assertEqual(urlparse(response.location).path, "/dashboard")
        list_users.assert_not_called()

    def test_customer_cannot_reach_admin_page(self) -> None:
        self.login(self.seed_user(CUSTOMER))

        with mock.patch.object(page_routes._USER_SERVICE, "list_users") as list_users:
            response = self.client.get("/admin/users")

        self.assertEqual(response.status_code, 302)
        self.assertEqual(urlparse(response.location).path, "/dashboard")
        list_users.assert_not_called()

    def test_admin_sees_user_list(self) -> None:
        self.seed_user(CUSTOMER, email="listed@example.com")
        self.login(self.seed_user(ADMIN))

        response = self.client.get("/admin/users")

        self.assertEqual(response.status_code, 200)
        self.assertIn("listed@example.com", response.get_data(as_text=True))

    def test_dashboard_sends_anonymous_users_to_login(self) -> None:
        response = self.client.get("/dashboard")

        self.assertEqual(response.status_code, 302)
        location = urlparse(response.location)
        self.assertEqual(location.path, "/login")
        self.assertEqual(parse_qs(location.query)["next"], ["/dashboard"])

    def test_dashboard_links_follow_role(self) -> None:
        self.login(self.seed_user(FINANCE_MANAGER))

        response = self.client.get("/dashboard")

        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn('href="/finance/invoices"', body)
        self.assertNotIn('href="/admin/users"', body)

    def test_api_requires_session(self) -> None:
        response = self.client.get("/api/orders")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "auth_required")

    def test_public_endpoints(self) -> None:
        self.seed_product(name="Public Mug")

        catalog = self.client.get("/api/catalog/products")
        self.assertEqual(catalog.status_code, 200)
        self.assertEqual([item["name"] for item in catalog.get_json()["items"]], ["Public Mug"])
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.get("/login").status_code, 200)

    def test_pending_account_session_counts_as_signed_out(self) -> None:
        pending = self.seed_user(SUPPLIER, status="pending")
        self.login(pending)

        response = self.client.get("/api/stock-requests")

        self.assertEqual(response.status_code, 401)
        with self.client.session_transaction() as session:
            self.assertNotIn("user_id", session)

    def test_disabled_account_session_counts_as_signed_out(self) -> None:
        uid = self.seed_user(CUSTOMER)
        with self.app.app_context():
            db = get_db()
            with db.transaction():
                db.execute("UPDATE users SET disabled = 1 WHERE uid = ?", (uid,))
        self.login(uid)

        self.assertEqual(self.client.get("/api/orders").status_code, 401)

    def test_wrong_role_on_api_is_forbidden_by_service(self) -> None:
        self.login(self.seed_user(CUSTOMER))

        response = self.client.get("/api/users")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "permission_denied")


if __name__ == "__main__":
    unittest.main()
