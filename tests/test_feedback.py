import unittest

from giftops.domain.contracts import Actor
from giftops.policies import ADMIN, CUSTOMER, CUSTOMER_BROADCAST, FINANCE_MANAGER, SUPPLIER
from giftops.workflow.feedback import can_close, can_view, is_unread, snippet
from tests.helpers.app_case import AppTestCase


def _actor(uid: str, role: str) -> Actor:
    return Actor(uid=uid, role=role, display_name=uid, email=f"{uid}@example.com")


class FeedbackRulesTest(unittest.TestCase):
    def test_snippet_is_truncated(self) -> None:
        self.assertEqual(len(snippet("x" * 80)), 50)
        self.assertEqual(snippet("short"), "short")

    def test_visibility(self) -> None:
        role_thread = {"sender_id": "s", "target_role": FINANCE_MANAGER}
        direct_thread = {"sender_id": "s", "target_role": SUPPLIER, "target_user_id": "sup-1"}
        broadcast = {"sender_id": "adm", "target_role": CUSTOMER_BROADCAST}

        self.assertTrue(can_view(role_thread, _actor("fin", FINANCE_MANAGER)))
        self.assertFalse(can_view(role_thread, _actor("sup-1", SUPPLIER)))
        self.assertTrue(can_view(direct_thread, _actor("sup-1", SUPPLIER)))
        self.assertFalse(can_view(direct_thread, _actor("sup-2", SUPPLIER)))
        self.assertTrue(can_view(broadcast, _actor("c", CUSTOMER)))
        self.assertTrue(can_view(role_thread, _actor("anyone", ADMIN)))

    def test_only_admin_closes_broadcasts(self) -> None:
        broadcast = {"sender_id": "adm", "target_role": CUSTOMER_BROADCAST, "status": "open"}

        self.assertFalse(can_close(broadcast, _actor("c", CUSTOMER)))
        self.assertTrue(can_close(broadcast, _actor("adm", ADMIN)))

    def test_unread_when_other_side_spoke_last(self) -> None:
        thread = {"last_replier_role": CUSTOMER}

        self.assertFalse(is_unread(thread, "customer"))
        self.assertTrue(is_unread(thread, FINANCE_MANAGER))


class FeedbackApiTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.customer_id = self.seed_user(CUSTOMER, display_name="Amina")
        self.finance_id = self.seed_user(FINANCE_MANAGER, display_name="Fin")
        self.admin_id = self.seed_user(ADMIN)

    def _open_thread(self, sender: str, **fields) -> dict:
        payload = {"subject": "Refund status", "message": "When will my refund arrive?", "target_role": "finance manager"}
        payload.update(fields)
        response = self.post_as(sender, "/api/feedback", payload)
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        return response.get_json()

    def test_thread_to_role_is_visible_to_that_role(self) -> None:
        thread = self._open_thread(self.customer_id)

        self.assertEqual(thread["target_role"], FINANCE_MANAGER)
        self.assertEqual(thread["status"], "open")
        self.assertFalse(thread["unread"])
        self.assertEqual([message["message"] for message in thread["messages"]], ["When will my refund arrive?"])

        self.login(self.finance_id)
        listed = self.client.get("/api/feedback").get_json()["items"]
        self.assertEqual([item["id"] for item in listed], [thread["id"]])
        self.assertTrue(listed[0]["unread"])

        supplier = self.seed_user(SUPPLIER)
        self.login(supplier)
        self.assertEqual(self.client.get("/api/feedback").get_json()["items"], [])
        missing = self.client.get(f"/api/feedback/{thread['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "feedback_thread_not_found")

    def test_reply_flips_unread_and_status(self) -> None:
        thread = self._open_thread(self.customer_id)

        reply = self.post_as(self.finance_id, f"/api/feedback/{thread['id']}/messages", {"message": "Tomorrow."})
        self.assertEqual(reply.status_code, 201)
        body = reply.get_json()
        self.assertEqual(body["status"], "replied")
        self.assertEqual(body["last_replier_role"], FINANCE_MANAGER)
        self.assertEqual(body["last_message_snippet"], "Tomorrow.")
        self.assertEqual(len(body["messages"]), 2)

        self.login(self.customer_id)
        self.assertTrue(self.client.get(f"/api/feedback/{thread['id']}").get_json()["unread"])

    def test_closed_thread_rejects_replies(self) -> None:
        thread = self._open_thread(self.customer_id)

        closed = self.post_as(self.customer_id, f"/api/feedback/{thread['id']}/close")
        self.assertEqual(closed.status_code, 200)
        self.assertEqual(closed.get_json()["status"], "closed")

        reply = self.post_as(self.finance_id, f"/api/feedback/{thread['id']}/messages", {"message": "Too late"})
        self.assertEqual(reply.status_code, 409)
        self.assertEqual(reply.get_json()["error"], "thread_closed")
        self.assertEqual(self.post_as(self.customer_id, f"/api/feedback/{thread['id']}/close").status_code, 409)

    def test_broadcast_is_admin_only(self) -> None:
        denied = self.post_as(
            self.customer_id,
            "/api/feedback",
            {"subject": "Hi all", "message": "Hello", "target_role": CUSTOMER_BROADCAST},
        )
        self.assertEqual(denied.status_code, 403)

        broadcast = self._open_thread(self.admin_id, subject="Holiday hours", target_role=CUSTOMER_BROADCAST)
        other_customer = self.seed_user(CUSTOMER)
        self.login(other_customer)
        self.assertEqual(self.client.get(f"/api/feedback/{broadcast['id']}").status_code, 200)
        self.assertEqual(self.post_as(other_customer, f"/api/feedback/{broadcast['id']}/close").status_code, 403)

    def test_direct_thread_to_user(self) -> None:
        supplier_a = self.seed_user(SUPPLIER, display_name="Acme")
        supplier_b = self.seed_user(SUPPLIER)

        thread = self._open_thread(self.finance_id, target_role="Supplier", target_user_id=supplier_a)

        self.assertEqual(thread["target_user_name"], "Acme")
        self.login(supplier_b)
        self.assertEqual(self.client.get(f"/api/feedback/{thread['id']}").status_code, 404)
        self.login(supplier_a)
        self.assertEqual(self.client.get(f"/api/feedback/{thread['id']}").status_code, 200)

    def test_validation(self) -> None:
        no_subject = self.post_as(self.customer_id, "/api/feedback", {"message": "x", "target_role": "Admin"})
        self.assertEqual(no_subject.status_code, 400)
        bad_role = self.post_as(
            self.customer_id,
            "/api/feedback",
            {"subject": "x", "message": "x", "target_role": "Wizard"},
        )
        self.assertEqual(bad_role.get_json()["error"], "role_invalid")
        unknown_user = self.post_as(
            self.customer_id,
            "/api/feedback",
            {"subject": "x", "message": "x", "target_role": "Admin", "target_user_id": "nobody"},
        )
        self.assertEqual(unknown_user.status_code, 404)


if __name__ == "__main__":
    unittest.main()
