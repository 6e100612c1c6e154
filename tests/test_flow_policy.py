import unittest

from giftops.errors import TransitionError, ValidationError
from giftops.ui_strings import status_keys_for_group
from giftops.workflow.invoices import INVOICE_FLOW
from giftops.workflow.order_flow import ORDER_FLOW
from giftops.workflow.stock_flow import STOCK_REQUEST_FLOW, best_bid
from giftops.workflow.task_flow import TASK_FLOW
from giftops.workflow.transitions import FlowPolicy, Transition


POLICIES = {
    "order": ORDER_FLOW,
    "stock_request": STOCK_REQUEST_FLOW,
    "invoice": INVOICE_FLOW,
    "task": TASK_FLOW,
}


class FlowPolicyTablesTest(unittest.TestCase):
    def test_transitions_use_known_statuses(self) -> None:
        for group, policy in POLICIES.items():
            known = set(status_keys_for_group(group))
            for action in policy.actions:
                transition = policy.get(action)
                self.assertTrue(transition.sources <= known, f"unknown source in {group}:{action}")
                self.assertIn(transition.target, known, f"unknown target in {group}:{action}")
                self.assertTrue(transition.roles, f"no roles in {group}:{action}")

    def test_terminal_statuses_have_no_actions(self) -> None:
        for group, policy in POLICIES.items():
            for status in policy.terminal:
                self.assertEqual(policy.allowed_actions(status), [], f"{group}:{status}")
                self.assertTrue(policy.flow_meta(status)["terminal"])

    def test_order_happy_path_is_connected(self) -> None:
        status = "pending"
        for action in (
            "submit_for_approval",
            "approve_payment",
            "start_production",
            "complete_production",
            "assign_rider",
            "start_delivery",
            "mark_delivered",
        ):
            status = ORDER_FLOW.ensure_allowed(action, status).target
        self.assertEqual(status, "delivered")

    def test_stock_request_happy_path_is_connected(self) -> None:
        status = "pending_bids"
        for action in ("submit_bid", "award", "accept_award", "fulfill", "receive"):
            status = STOCK_REQUEST_FLOW.ensure_allowed(action, status).target
        self.assertEqual(status, "received")

    def test_bidding_stays_open_until_award(self) -> None:
        self.assertTrue(STOCK_REQUEST_FLOW.action_allowed("submit_bid", "pending_award"))
        self.assertFalse(STOCK_REQUEST_FLOW.action_allowed("submit_bid", "awarded"))
        self.assertFalse(STOCK_REQUEST_FLOW.action_allowed("award", "pending_bids"))


class FlowPolicyBehaviourTest(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = FlowPolicy(
            "widget",
            [
                Transition("open", frozenset({"new"}), "opened", frozenset({"Admin"})),
                Transition("close", frozenset({"new", "opened"}), "closed", frozenset({"Admin"})),
            ],
            terminal={"closed"},
        )

    def test_unknown_action_is_a_validation_error(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.policy.get("explode")

        self.assertEqual(ctx.exception.code, "action_invalid")
        self.assertEqual(ctx.exception.http_status, 400)

    def test_disallowed_action_lists_sorted_alternatives(self) -> None:
        with self.assertRaises(TransitionError) as ctx:
            self.policy.ensure_allowed("open", "opened")

        self.assertEqual(ctx.exception.http_status, 409)
        self.assertEqual(
            ctx.exception.payload,
            {"entity": "widget", "status": "opened", "action": "open", "allowed_actions": ["close"]},
        )

    def test_flow_meta(self) -> None:
        self.assertEqual(
            self.policy.flow_meta("new"),
            {"status": "new", "allowed_actions": ["open", "close"], "terminal": False},
        )


class BestBidTest(unittest.TestCase):
    def test_lowest_price_wins_and_ties_keep_submission_order(self) -> None:
        bids = [
            {"id": 1, "price_per_unit": 120.0},
            {"id": 2, "price_per_unit": 95.0},
            {"id": 3, "price_per_unit": 95.0},
        ]

        self.assertEqual(best_bid(bids)["id"], 2)
        self.assertIsNone(best_bid([]))


if __name__ == "__main__":
    unittest.main()
