import unittest

from tests.helpers.app_case import AppTestCase


class UsersCliTest(AppTestCase):
    def _create(self, *extra: str):
        runner = self.app.test_cli_runner()
        return runner.invoke(
            args=["users", "create", "--email", "Owner@Example.com", "--password", "long-enough-pass", *extra]
        )

    def test_create_admin_account(self) -> None:
        result = self._create("--display-name", "Shop Owner")

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("Created Admin owner@example.com", result.output)
        row = self.fetch_one("SELECT role, status, display_name FROM users WHERE email = 'owner@example.com'")
        self.assertEqual(row["role"], "Admin")
        self.assertEqual(row["status"], "approved")
        self.assertEqual(row["display_name"], "Shop Owner")

    def test_role_spelling_is_normalized(self) -> None:
        result = self._create("--role", "finance_manager")

        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("Created FinanceManager", result.output)

    def test_unknown_role_is_rejected(self) -> None:
        result = self._create("--role", "wizard")

        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("unknown role", result.output)

    def test_duplicate_email_reports_error(self) -> None:
        self.assertEqual(self._create().exit_code, 0)

        result = self._create()

        self.assertEqual(result.exit_code, 1)
        self.assertIn("email_taken", result.output)


if __name__ == "__main__":
    unittest.main()
