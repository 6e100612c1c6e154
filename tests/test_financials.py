import unittest
from datetime import date

from giftops.policies import ADMIN, CUSTOMER, FINANCE_MANAGER, SUPPLIER
from giftops.workflow.financials import build_financial_summary
from tests.helpers.app_case import AppTestCase


def _order(order_id, created_at, items, *, shipping=0.0, payment_status="paid"):
    sub_total = sum(item["price"] * item["quantity"] for item in items)
    return {
        "id": order_id,
        "created_at": created_at,
        "payment_status": payment_status,
        "items": items,
        "shipping_cost": shipping,
        "total_amount": sub_total + shipping,
    }


MUG = {"product_id": "p-mug", "name": "Engraved Mug", "quantity": 2, "price": 1150.0}
FRAME = {"product_id": "p-frame", "name": "Photo Frame", "quantity": 1, "price": 500.0}
BASE_PRICES = {"p-mug": 1000.0, "p-frame": 500.0}

ORDERS = [
    _order("o-april", "2024-04-01T09:00:00.000Z", [], shipping=100.0),
    _order("o-may", "2024-05-03T10:15:00.000Z", [MUG], shipping=300.0),
    _order("o-june", "2024-06-10T08:00:00.000Z", [FRAME]),
    _order("o-unpaid", "2024-06-11T08:00:00.000Z", [FRAME], payment_status="pending"),
]
INVOICES = [
    {"id": "i-paid", "status": "paid", "invoice_date": "2024-06-02", "total_amount": 800.0},
    {"id": "i-open", "status": "approved_for_payment", "invoice_date": "2024-06-03", "total_amount": 5000.0},
]


class FinancialSummaryTest(unittest.TestCase):
    def _summary(self, **kwargs):
        return build_financial_summary(ORDERS, INVOICES, BASE_PRICES, **kwargs)

    def test_totals_cover_paid_records_in_range(self) -> None:
        summary = self._summary(start=date(2024, 5, 1), end=date(2024, 6, 30), today=date(2024, 7, 15))

        self.assertEqual(summary["total_revenue"], 3100)
        self.assertEqual(summary["sales_count"], 2)
        self.assertEqual(summary["total_expenses"], 800)
        self.assertEqual(summary["net_profit"], 2300)
        self.assertEqual(summary["period"], {"start_date": "2024-05-01", "end_date": "2024-06-30"})
        self.assertEqual(
            summary["monthly"],
            [
                {"month": "2024-05", "revenue": 2600, "expenses": 0, "net": 2600},
                {"month": "2024-06", "revenue": 500, "expenses": 800, "net": -300},
            ],
        )

    def test_revenue_breakdown_separates_customizations_and_delivery(self) -> None:
        summary = self._summary(start=date(2024, 5, 1), end=date(2024, 6, 30), today=date(2024, 7, 15))

        self.assertEqual(
            [(row["source"], row["value"]) for row in summary["revenue_breakdown"]],
            [("product_sales", 2500), ("customizations", 300), ("delivery_fees", 300)],
        )

    def test_empty_sources_are_left_out_of_breakdown(self) -> None:
        summary = self._summary(start=date(2024, 6, 1), end=date(2024, 6, 30), today=date(2024, 7, 15))

        self.assertEqual([row["source"] for row in summary["revenue_breakdown"]], ["product_sales"])

    def test_top_products_rank_by_revenue(self) -> None:
        many = []
        for index in range(1, 8):
            line = {"product_id": f"p-{index}", "name": f"Gift {index}", "quantity": 1, "price": 100.0 * index}
            many.append(_order(f"o-{index}", "2024-05-05T10:00:00.000Z", [line]))

        top = build_financial_summary(many, [], {}, today=date(2024, 5, 20))["top_products"]

        self.assertEqual([row["name"] for row in top], ["Gift 7", "Gift 6", "Gift 5", "Gift 4", "Gift 3"])
        self.assertEqual(top[0], {"product_id": "p-7", "name": "Gift 7", "revenue": 700, "quantity": 1})

    def test_daily_chart_follows_range_end(self) -> None:
        summary = self._summary(start=date(2024, 5, 1), end=date(2024, 6, 30), today=date(2024, 7, 15))

        self.assertEqual(summary["chart_month"], "2024-06")
        self.assertEqual(len(summary["daily"]), 30)
        by_day = {row["day"]: row for row in summary["daily"]}
        self.assertEqual(by_day["2024-06-10"]["revenue"], 500)
        self.assertEqual(by_day["2024-06-02"]["expenses"], 800)
        self.assertEqual(summary["chart_month_net_change"], -300)

    def test_open_range_charts_latest_month_up_to_today(self) -> None:
        summary = self._summary(today=date(2024, 6, 15))

        self.assertEqual(summary["sales_count"], 3)
        self.assertEqual(summary["total_revenue"], 3200)
        self.assertEqual(summary["chart_month"], "2024-06")
        self.assertEqual(summary["daily"][-1]["day"], "2024-06-15")

    def test_no_activity_charts_current_month(self) -> None:
        summary = build_financial_summary([], [], {}, today=date(2024, 2, 3))

        self.assertEqual(summary["total_revenue"], 0)
        self.assertEqual(summary["net_profit"], 0)
        self.assertEqual(summary["chart_month"], "2024-02")
        self.assertEqual(len(summary["daily"]), 3)
        self.assertEqual(summary["revenue_breakdown"], [])
        self.assertEqual(summary["top_products"], [])


class FinancialsApiTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.customer_id = self.seed_user(CUSTOMER)
        self.finance_id = self.seed_user(FINANCE_MANAGER)
        self.supplier_id = self.seed_user(SUPPLIER)

    def _paid_invoice(self) -> None:
        invoice = self.post_as(
            self.supplier_id,
            "/api/invoices",
            {"tax_rate": 16, "items": [{"description": "Photo Frame A4", "quantity": 5, "unit_price": 90}]},
        ).get_json()
        self.post_as(self.finance_id, f"/api/invoices/{invoice['id']}/approve")
        paid = self.post_as(self.finance_id, f"/api/invoices/{invoice['id']}/pay")
        self.assertEqual(paid.status_code, 200, msg=paid.get_data(as_text=True))

    def test_summary_counts_only_paid_orders_and_invoices(self) -> None:
        self.place_order(self.customer_id, payment_method="mpesa")
        self.place_order(self.customer_id, payment_method="cod")
        self._paid_invoice()

        self.login(self.finance_id)
        response = self.client.get("/api/finance/financials")

        self.assertEqual(response.status_code, 200, msg=response.get_data(as_text=True))
        summary = response.get_json()
        self.assertEqual(summary["sales_count"], 1)
        self.assertEqual(summary["total_revenue"], 1300)
        self.assertEqual(summary["total_expenses"], 522)
        self.assertEqual(summary["net_profit"], 778)
        self.assertEqual(
            [(row["source"], row["value"]) for row in summary["revenue_breakdown"]],
            [("product_sales", 1000), ("delivery_fees", 300)],
        )
        self.assertEqual(summary["top_products"][0]["name"], "Engraved Mug")

    def test_date_range_filters_and_is_normalized(self) -> None:
        self.place_order(self.customer_id, payment_method="mpesa")

        self.login(self.finance_id)
        response = self.client.get("/api/finance/financials?start_date=2000-01-31&end_date=2000-01-01")

        summary = response.get_json()
        self.assertEqual(summary["period"], {"start_date": "2000-01-01", "end_date": "2000-01-31"})
        self.assertEqual(summary["sales_count"], 0)
        self.assertEqual(summary["chart_month"], "2000-01")
        self.assertEqual(len(summary["daily"]), 31)

        invalid = self.client.get("/api/finance/financials?start_date=yesterday")
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "date_invalid")

    def test_only_finance_and_admin_see_financials(self) -> None:
        self.login(self.customer_id)
        self.assertEqual(self.client.get("/api/finance/financials").status_code, 403)
        self.login(self.supplier_id)
        self.assertEqual(self.client.get("/api/finance/financials").status_code, 403)
        self.login(self.seed_user(ADMIN))
        self.assertEqual(self.client.get("/api/finance/financials").status_code, 200)

    def test_financials_page_lists_top_products(self) -> None:
        self.place_order(self.customer_id, payment_method="mpesa")

        self.login(self.finance_id)
        response = self.client.get("/finance/financials")

        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn("Financials", body)
        self.assertIn("Engraved Mug", body)


if __name__ == "__main__":
    unittest.main()
