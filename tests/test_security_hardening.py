import re
import unittest

from giftops.policies import CUSTOMER, SUPPLIER
from giftops.ui_strings import error_message
from tests.helpers.app_case import AppTestCase


class CsrfTest(AppTestCase):
    config_overrides = {"CSRF_ENABLED": True}

    def _csrf_from_login_page(self) -> str:
        response = self.client.get("/login")
        self.assertEqual(response.status_code, 200)
        match = re.search(r'name="csrf_token"\s+value="([^"]+)"', response.get_data(as_text=True))
        self.assertIsNotNone(match)
        return match.group(1)

    def test_login_page_renders_token(self) -> None:
        self.assertTrue(self._csrf_from_login_page().strip())

    def test_form_post_without_token_is_rejected(self) -> None:
        self._csrf_from_login_page()

        response = self.client.post("/logout", data={"confirm": "1"})

        self.assertEqual(response.status_code, 400)
        payload = response.get_json() or {}
        self.assertEqual(payload.get("error"), "csrf_invalid")
        self.assertEqual(payload.get("message"), error_message("csrf_invalid"))

    def test_form_post_with_token_passes(self) -> None:
        token = self._csrf_from_login_page()

        response = self.client.post("/logout", data={"csrf_token": token})

        self.assertEqual(response.status_code, 302)

    def test_json_api_is_not_subject_to_form_csrf(self) -> None:
        customer = self.seed_user(CUSTOMER)
        self.login(customer)

        response = self.client.post("/api/auth/logout", json={})

        self.assertEqual(response.status_code, 200)


class RateLimitTest(AppTestCase):
    config_overrides = {"RATE_LIMIT_ENABLED": True, "RATE_LIMIT_MAX_REQUESTS": 2, "RATE_LIMIT_WINDOW_SECONDS": 60}

    def test_rate_limit_blocks_excessive_api_calls(self) -> None:
        first = self.client.get("/api/catalog/products")
        second = self.client.get("/api/catalog/products")
        third = self.client.get("/api/catalog/products")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(third.status_code, 429)
        payload = third.get_json() or {}
        self.assertEqual(payload.get("error"), "rate_limit_exceeded")
        self.assertEqual(payload.get("message"), error_message("rate_limit_exceeded"))
        self.assertGreaterEqual(int(payload.get("retry_after") or 0), 0)

    def test_pages_get_plain_text_with_retry_after(self) -> None:
        for _ in range(2):
            self.client.get("/login")

        response = self.client.get("/login")

        self.assertEqual(response.status_code, 429)
        self.assertIn("Retry-After", response.headers)
        self.assertEqual(response.get_data(as_text=True), error_message("rate_limit_exceeded"))


class SensitiveRateLimitTest(AppTestCase):
    config_overrides = {
        "RATE_LIMIT_ENABLED": True,
        "RATE_LIMIT_LOGIN_MAX_REQUESTS": 2,
        "RATE_LIMIT_CHECKOUT_MAX_REQUESTS": 1,
        "RATE_LIMIT_BID_MAX_REQUESTS": 1,
    }

    def test_login_attempts_use_their_own_bucket(self) -> None:
        credentials = {"email": "nobody@example.com", "password": "wrong-password"}
        for _ in range(2):
            self.assertEqual(self.client.post("/api/auth/login", json=credentials).status_code, 401)

        blocked = self.client.post("/api/auth/login", json=credentials)

        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked.get_json()["bucket"], "login")
        self.assertEqual(self.client.post("/login", data=credentials).status_code, 429)
        self.assertEqual(self.client.get("/api/catalog/products").status_code, 200)

    def test_checkout_is_limited_per_customer(self) -> None:
        first_customer = self.seed_user(CUSTOMER)
        self.place_order(first_customer)

        again = self.client.post("/api/orders", json={"items": []})
        self.assertEqual(again.status_code, 429)
        self.assertEqual(again.get_json()["bucket"], "checkout")

        self.place_order(self.seed_user(CUSTOMER))

    def test_bid_submission_is_limited_per_supplier(self) -> None:
        supplier = self.seed_user(SUPPLIER)
        path = "/api/stock-requests/missing/bids"

        self.assertEqual(self.post_as(supplier, path, {"price_per_unit": 10}).status_code, 404)
        blocked = self.post_as(supplier, path, {"price_per_unit": 10})

        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked.get_json()["bucket"], "bid")


class ApiBodyTest(AppTestCase):
    def test_form_encoded_api_mutation_is_refused(self) -> None:
        customer = self.seed_user(CUSTOMER)
        order = self.place_order(customer)

        form_post = self.client.post(f"/api/orders/{order['id']}/cancel", data={"reason": "changed my mind"})
        text_post = self.client.post(
            f"/api/orders/{order['id']}/cancel", data="reason=x", content_type="text/plain"
        )

        for response in (form_post, text_post):
            self.assertEqual(response.status_code, 415)
            self.assertEqual(response.get_json()["error"], "json_body_required")
        status = self.fetch_one("SELECT status FROM orders WHERE id = ?", (order["id"],))["status"]
        self.assertEqual(status, "pending_finance_approval")

    def test_session_cookie_is_same_site(self) -> None:
        response = self.client.get("/login")

        self.assertEqual(self.app.config["SESSION_COOKIE_SAMESITE"], "Lax")
        cookie = response.headers.get("Set-Cookie") or ""
        self.assertIn("SameSite=Lax", cookie)
        self.assertIn("HttpOnly", cookie)

class SecurityHeadersTest(AppTestCase):
    def test_security_headers_present(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Content-Type-Options"), "nosniff")
        self.assertEqual(response.headers.get("X-Frame-Options"), "DENY")
        self.assertEqual(response.headers.get("Referrer-Policy"), "strict-origin-when-cross-origin")
        self.assertIn("frame-ancestors 'none'", response.headers.get("Content-Security-Policy") or "")
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())
        self.assertTrue((response.headers.get("X-Response-Time-Ms") or "").strip())
        self.assertNotIn("Strict-Transport-Security", response.headers)

    def test_headers_can_be_disabled(self) -> None:
        self.app.config["SECURITY_HEADERS_ENABLED"] = False

        response = self.client.get("/health")

        self.assertNotIn("X-Frame-Options", response.headers)
        self.assertTrue((response.headers.get("X-Request-Id") or "").strip())


if __name__ == "__main__":
    unittest.main()
