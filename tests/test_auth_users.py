import unittest
from urllib.parse import urlparse

from giftops.policies import ADMIN, CUSTOMER, DISPATCH_MANAGER, RIDER
from tests.helpers.app_case import AppTestCase


PASSWORD = "correct-horse"


class RegistrationTest(AppTestCase):
    def _register(self, **fields):
        payload = {"email": "Amina@Example.com", "password": PASSWORD, "display_name": "Amina Otieno"}
        payload.update(fields)
        return self.client.post("/api/auth/register", json=payload)

    def test_customer_is_approved_and_signed_in(self) -> None:
        response = self._register()

        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        user = response.get_json()
        self.assertEqual(user["email"], "amina@example.com")
        self.assertEqual(user["role"], CUSTOMER)
        self.assertEqual(user["status"], "approved")
        self.assertEqual(user["first_name"], "Amina")
        self.assertEqual(user["last_name"], "Otieno")
        self.assertNotIn("password_hash", user)

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["uid"], user["uid"])

    def test_staff_roles_wait_for_approval(self) -> None:
        response = self._register(role="rider")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["role"], RIDER)
        self.assertEqual(response.get_json()["status"], "pending")
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_admin_role_cannot_be_self_assigned(self) -> None:
        response = self._register(role="Admin")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "role_invalid")

    def test_password_and_email_rules(self) -> None:
        short = self._register(password="short")
        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.get_json()["error"], "password_too_short")

        self.assertEqual(self._register().status_code, 201)
        self.client.post("/api/auth/logout")
        duplicate = self._register(email="amina@example.com ")
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "email_taken")

    def test_form_registration_for_pending_role_shows_notice(self) -> None:
        response = self.client.post(
            "/register",
            data={"email": "supplier@example.com", "password": PASSWORD, "role": "Supplier"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("waiting for approval", response.get_data(as_text=True))


class LoginTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client.post(
            "/api/auth/register",
            json={"email": "rider@example.com", "password": PASSWORD, "role": "Rider"},
        )
        self.client.post("/api/auth/register", json={"email": "buyer@example.com", "password": PASSWORD})
        self.client.post("/api/auth/logout")
        self.rider = self.fetch_one("SELECT uid FROM users WHERE email = 'rider@example.com'")["uid"]
        self.buyer = self.fetch_one("SELECT uid FROM users WHERE email = 'buyer@example.com'")["uid"]

    def _login(self, email: str, password: str = PASSWORD):
        return self.client.post("/api/auth/login", json={"email": email, "password": password})

    def test_valid_credentials_start_a_session(self) -> None:
        response = self._login("BUYER@example.com")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["role"], CUSTOMER)
        self.assertEqual(self.client.get("/api/auth/me").get_json()["uid"], self.buyer)

        self.client.post("/api/auth/logout")
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_wrong_password(self) -> None:
        response = self._login("buyer@example.com", "not-the-password")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "invalid_credentials")
        self.assertEqual(self._login("nobody@example.com").get_json()["error"], "invalid_credentials")

    def test_pending_account_cannot_sign_in(self) -> None:
        response = self._login("rider@example.com")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "account_not_approved")

    def test_disabled_account_cannot_sign_in(self) -> None:
        admin_id = self.seed_user(ADMIN)
        self.post_as(admin_id, f"/api/users/{self.buyer}/disable")
        self.logout()

        response = self._login("buyer@example.com")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "account_disabled")

    def test_form_login_redirects_to_next(self) -> None:
        response = self.client.post(
            "/login?next=/orders",
            data={"email": "buyer@example.com", "password": PASSWORD},
        )

        self.assertEqual(response.status_code, 302)
        self.assertEqual(urlparse(response.location).path, "/orders")

    def test_form_login_ignores_offsite_next(self) -> None:
        response = self.client.post(
            "/login?next=https://evil.example.com/",
            data={"email": "buyer@example.com", "password": PASSWORD},
        )

        self.assertEqual(response.status_code, 302)
        self.assertEqual(urlparse(response.location).path, "/dashboard")
        self.assertIn(urlparse(response.location).netloc, ("", "localhost"))

    def test_form_login_failure_renders_message(self) -> None:
        response = self.client.post("/login", data={"email": "buyer@example.com", "password": "nope"})

        self.assertEqual(response.status_code, 200)
        self.assertIn("Invalid email or password.", response.get_data(as_text=True))


class UserAdministrationTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin_id = self.seed_user(ADMIN)
        self.rider_id = self.seed_user(RIDER, status="pending", display_name="Kamau Rider")

    def test_approve_then_reject(self) -> None:
        approved = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/approve")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.get_json()["status"], "approved")

        no_reason = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/reject")
        self.assertEqual(no_reason.status_code, 400)

        rejected = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/reject", {"reason": "Incomplete papers"})
        self.assertEqual(rejected.get_json()["status"], "rejected")
        self.assertEqual(rejected.get_json()["rejection_reason"], "Incomplete papers")

    def test_role_change_normalizes_spelling(self) -> None:
        response = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/role", {"role": "dispatch_manager"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["role"], DISPATCH_MANAGER)
        bad = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/role", {"role": "Wizard"})
        self.assertEqual(bad.status_code, 400)

    def test_disable_and_enable(self) -> None:
        disabled = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/disable")
        self.assertTrue(disabled.get_json()["disabled"])
        self.assertIsNotNone(disabled.get_json()["disabled_at"])

        enabled = self.post_as(self.admin_id, f"/api/users/{self.rider_id}/enable")
        self.assertFalse(enabled.get_json()["disabled"])

    def test_admin_cannot_disable_self(self) -> None:
        response = self.post_as(self.admin_id, f"/api/users/{self.admin_id}/disable")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "action_invalid")

    def test_unknown_action_and_user(self) -> None:
        self.assertEqual(self.post_as(self.admin_id, f"/api/users/{self.rider_id}/promote").status_code, 400)
        self.assertEqual(self.post_as(self.admin_id, "/api/users/missing/approve").status_code, 404)

    def test_non_admin_cannot_administer(self) -> None:
        customer = self.seed_user(CUSTOMER)

        self.assertEqual(self.post_as(customer, f"/api/users/{self.rider_id}/approve").status_code, 403)
        self.assertEqual(self.post_as(customer, f"/api/users/{customer}/disable").status_code, 403)

    def test_list_filters(self) -> None:
        self.login(self.admin_id)

        pending = self.client.get("/api/users?status=pending").get_json()["items"]
        self.assertEqual([user["uid"] for user in pending], [self.rider_id])
        self.assertEqual(self.client.get("/api/users?role=Wizard").status_code, 400)

    def test_riders_list_only_active_approved_riders(self) -> None:
        active = self.seed_user(RIDER, display_name="Active Rider")
        dispatch = self.seed_user(DISPATCH_MANAGER)

        self.login(dispatch)
        riders = self.client.get("/api/riders").get_json()["items"]

        self.assertEqual([rider["uid"] for rider in riders], [active])
        self.login(active)
        self.assertEqual(self.client.get("/api/riders").status_code, 403)

    def test_rider_updates_own_location(self) -> None:
        rider = self.seed_user(RIDER)
        self.login(rider)

        response = self.client.put("/api/riders/me/location", json={"lat": -1.2921, "lng": 36.8219})

        self.assertEqual(response.status_code, 200)
        location = response.get_json()["current_location"]
        self.assertEqual((location["lat"], location["lng"]), (-1.2921, 36.8219))
        self.assertEqual(self.client.put("/api/riders/me/location", json={"lat": 91, "lng": 0}).status_code, 400)
        self.assertEqual(self.client.put("/api/riders/me/location", json={"lat": "nan", "lng": 0}).status_code, 400)


if __name__ == "__main__":
    unittest.main()
