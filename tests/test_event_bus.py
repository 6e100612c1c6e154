import unittest

from giftops.application.notification_service import NotificationService
from giftops.core import EventBus, OrderPlaced, OrderStatusChanged, RiderAssigned, UserStatusChanged
from giftops.policies import CUSTOMER, FINANCE_MANAGER
from tests.helpers.app_case import AppTestCase


class EventBusTest(unittest.TestCase):
    def test_handlers_run_in_subscription_order(self) -> None:
        bus = EventBus()
        calls = []
        bus.subscribe(OrderPlaced, lambda event: calls.append(("first", event.order_id)))
        bus.subscribe(OrderPlaced, lambda event: calls.append(("second", event.order_id)))

        bus.publish(OrderPlaced(order_id="o-1", customer_id="c-1", total_amount=10.0))

        self.assertEqual(calls, [("first", "o-1"), ("second", "o-1")])

    def test_same_handler_is_registered_once(self) -> None:
        bus = EventBus()
        calls = []

        def handler(event) -> None:
            calls.append(event.rider_id)

        bus.subscribe(RiderAssigned, handler)
        bus.subscribe(RiderAssigned, handler)
        bus.publish(RiderAssigned(order_id="o-1", rider_id="r-1"))

        self.assertEqual(calls, ["r-1"])

    def test_events_only_reach_their_own_type(self) -> None:
        bus = EventBus()
        calls = []
        bus.subscribe(OrderPlaced, lambda event: calls.append("placed"))

        bus.publish(OrderStatusChanged(order_id="o-1", action="ship", from_status="processing", to_status="shipped"))

        self.assertEqual(calls, [])

    def test_failing_handler_is_logged_and_others_still_run(self) -> None:
        bus = EventBus()
        calls = []

        def broken(event) -> None:
            raise RuntimeError("handler exploded")

        bus.subscribe(OrderPlaced, broken)
        bus.subscribe(OrderPlaced, lambda event: calls.append(event.order_id))

        with self.assertLogs("giftops", level="ERROR") as captured:
            bus.publish(OrderPlaced(order_id="o-9", customer_id="c-1", total_amount=1.0))

        self.assertEqual(calls, ["o-9"])
        self.assertIn("event_handler_failed", captured.output[0])

    def test_clear_drops_handlers(self) -> None:
        bus = EventBus()
        calls = []
        bus.subscribe(OrderPlaced, lambda event: calls.append(1))

        bus.clear()
        bus.publish(OrderPlaced(order_id="o-1", customer_id="c-1", total_amount=1.0))

        self.assertEqual(calls, [])


class NotificationServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        NotificationService().register_event_handlers(self.bus)

    def test_order_events_notify_the_customer(self) -> None:
        with self.assertLogs("giftops", level="INFO") as captured:
            self.bus.publish(OrderPlaced(order_id="o-1", customer_id="c-1", total_amount=1300.0))
            self.bus.publish(
                OrderStatusChanged(
                    order_id="o-1",
                    action="approve_payment",
                    from_status="pending_finance_approval",
                    to_status="processing",
                    customer_id="c-1",
                )
            )

        self.assertEqual([record.getMessage() for record in captured.records], ["customer_notification_queued"] * 2)
        self.assertEqual([record.template for record in captured.records], ["order_placed", "order_processing"])
        self.assertEqual(captured.records[1].recipient, "c-1")

    def test_status_change_without_customer_is_silent(self) -> None:
        with self.assertNoLogs("giftops", level="INFO"):
            self.bus.publish(
                OrderStatusChanged(order_id="o-1", action="ship", from_status="processing", to_status="shipped")
            )

    def test_disabled_account_uses_its_own_template(self) -> None:
        with self.assertLogs("giftops", level="INFO") as captured:
            self.bus.publish(UserStatusChanged(user_id="u-1", status="approved", disabled=True))

        self.assertEqual(captured.records[0].getMessage(), "notification_queued")
        self.assertEqual(captured.records[0].template, "account_disabled")
        self.assertEqual(captured.records[0].audience, "user")


class CheckoutPublishesEventsTest(AppTestCase):
    def test_checkout_and_payment_approval_queue_customer_notifications(self) -> None:
        customer = self.seed_user(CUSTOMER)
        finance = self.seed_user(FINANCE_MANAGER)

        with self.assertLogs("giftops", level="INFO") as captured:
            order = self.place_order(customer)
            self.post_as(finance, f"/api/orders/{order['id']}/payment/approve")

        templates = [
            getattr(record, "template", None)
            for record in captured.records
            if record.getMessage() == "customer_notification_queued"
        ]
        self.assertIn("order_placed", templates)
        self.assertIn("order_processing", templates)


if __name__ == "__main__":
    unittest.main()
