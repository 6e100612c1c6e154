import csv
import io
import unittest

from giftops.policies import CUSTOMER, DISPATCH_MANAGER, FINANCE_MANAGER, SUPPLIER
from giftops.workflow.csv_export import (
    CSV_BOM,
    INVOICE_COLUMNS,
    ORDER_COLUMNS,
    format_cell,
    orders_csv,
    render_csv,
)
from tests.helpers.app_case import AppTestCase


def _parse(body: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(body[len(CSV_BOM):], newline="")))


class RenderCsvTest(unittest.TestCase):
    def test_format_cell(self) -> None:
        self.assertEqual(format_cell(None), "")
        self.assertEqual(format_cell(True), "yes")
        self.assertEqual(format_cell(False), "no")
        self.assertEqual(format_cell(12.5), "12.50")
        self.assertEqual(format_cell(3), "3")

    def test_render_quotes_only_when_needed(self) -> None:
        columns = [("Name", lambda row: row["name"]), ("Note", lambda row: row["note"])]

        body = render_csv(columns, [{"name": "Mug", "note": 'Says "hi", twice'}, {"name": "Card", "note": None}])

        self.assertTrue(body.startswith(CSV_BOM))
        self.assertEqual(
            body[len(CSV_BOM):],
            'Name,Note\r\nMug,"Says ""hi"", twice"\r\nCard,\r\n',
        )

    def test_order_rows_match_header_width(self) -> None:
        order = {
            "id": "o-1",
            "items": [{"name": "Mug", "quantity": 2}, {"name": "Card", "quantity": 1}],
            "shipping_address": {"address_line1": "Moi Avenue 12", "city": "Nairobi"},
            "sub_total": 2000,
            "is_gift": 1,
            "customer_notes": "Line one\nline two",
        }

        rows = _parse(orders_csv([order]))

        self.assertEqual(len(ORDER_COLUMNS), 17)
        self.assertEqual(len(INVOICE_COLUMNS), 13)
        self.assertEqual([len(row) for row in rows], [17, 17])
        record = dict(zip(rows[0], rows[1]))
        self.assertEqual(record["Items"], "Mug x2; Card x1")
        self.assertEqual(record["Address"], "Moi Avenue 12, Nairobi")
        self.assertEqual(record["Subtotal"], "2000.00")
        self.assertEqual(record["Gift"], "yes")
        self.assertEqual(record["Customer Notes"], "Line one\nline two")


class CsvExportApiTest(AppTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.customer_id = self.seed_user(CUSTOMER, display_name="Wanjiru, M.")
        self.finance_id = self.seed_user(FINANCE_MANAGER)

    def test_orders_export_is_an_attachment(self) -> None:
        self.place_order(self.customer_id, customer_notes='Ring the "blue" gate, then call')

        self.login(self.finance_id)
        response = self.client.get("/api/exports/orders.csv")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "text/csv")
        self.assertTrue(response.headers["Content-Disposition"].startswith('attachment; filename="orders-'))
        body = response.get_data(as_text=True)
        self.assertTrue(body.startswith(CSV_BOM))
        self.assertIn("\r\n", body)
        self.assertIn('"Ring the ""blue"" gate, then call"', body)
        self.assertIn('"Wanjiru, M."', body)
        rows = _parse(body)
        self.assertEqual(len(rows), 2)
        self.assertTrue(all(len(row) == 17 for row in rows))
        record = dict(zip(rows[0], rows[1]))
        self.assertEqual(record["Customer"], "Wanjiru, M.")
        self.assertEqual(record["Status"], "pending_finance_approval")
        self.assertEqual(record["Total"], "1300.00")

    def test_orders_export_status_filter(self) -> None:
        self.place_order(self.customer_id)
        dispatch_id = self.seed_user(DISPATCH_MANAGER)

        self.login(dispatch_id)
        rows = _parse(self.client.get("/api/exports/orders.csv?status=delivered").get_data(as_text=True))

        self.assertEqual(len(rows), 1)

    def test_invoices_export(self) -> None:
        supplier_id = self.seed_user(SUPPLIER, display_name="Baraka Traders")
        self.post_as(
            supplier_id,
            "/api/invoices",
            {"tax_rate": 16, "items": [{"description": "Frames", "quantity": 5, "unit_price": 90}]},
        )

        self.login(self.finance_id)
        response = self.client.get("/api/exports/invoices.csv")

        self.assertEqual(response.status_code, 200)
        rows = _parse(response.get_data(as_text=True))
        self.assertEqual(len(rows), 2)
        record = dict(zip(rows[0], rows[1]))
        self.assertEqual(record["Supplier"], "Baraka Traders")
        self.assertEqual(record["Items"], "Frames x5")
        self.assertEqual(record["Total"], "522.00")

    def test_exports_are_role_gated(self) -> None:
        dispatch_id = self.seed_user(DISPATCH_MANAGER)

        self.login(self.customer_id)
        self.assertEqual(self.client.get("/api/exports/orders.csv").status_code, 403)
        self.login(dispatch_id)
        self.assertEqual(self.client.get("/api/exports/invoices.csv").status_code, 403)
        self.logout()
        self.assertEqual(self.client.get("/api/exports/orders.csv").status_code, 401)


if __name__ == "__main__":
    unittest.main()
