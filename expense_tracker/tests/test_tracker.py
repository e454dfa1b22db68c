import io
import itertools
import unittest
from datetime import date, datetime
from decimal import Decimal
from unittest import mock
from urllib.error import HTTPError

from expense_tracker.api_client import NOT_FOUND_MESSAGE, ApiClient
from expense_tracker.backends import LocalBackend, RemoteBackend
from expense_tracker.config import Settings
from expense_tracker.errors import PersistenceError, TransportError
from expense_tracker.notifications import NotificationCenter
from expense_tracker.storage import MONTHLY_BUDGET_KEY, MemoryStorage
from expense_tracker.tracker import EXPENSE_NOT_FOUND, ExpenseTracker, build_tracker

TODAY = date(2024, 5, 15)
NOW = datetime(2024, 5, 15, 12, 0)


class RecordingSink:
    def __init__(self) -> None:
        self.titles: list[str] = []

    def show(self, title: str, message: str) -> None:
        self.titles.append(title)


def expense_form(amount: str = "50", description: str = "Groceries") -> dict:
    return {"amount": amount, "description": description, "category": "Food"}


class LocalTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryStorage()
        ids = itertools.count(1)
        backend = LocalBackend(self.storage, clock=lambda: NOW, id_factory=lambda: str(next(ids)))
        self.sink = RecordingSink()
        self.tracker = ExpenseTracker(
            backend=backend,
            storage=self.storage,
            notifications=NotificationCenter([self.sink], clock=lambda: NOW),
            today=lambda: TODAY,
        )

    def test_add_expense_then_dashboard(self) -> None:
        result = self.tracker.add_expense(expense_form())

        self.assertTrue(result.success)
        dashboard = self.tracker.dashboard().data
        self.assertEqual(dashboard.monthly_budget, Decimal("1000"))
        self.assertEqual(dashboard.summary.total_spent, Decimal("50"))
        self.assertEqual(dashboard.summary.remaining_budget, Decimal("950"))
        self.assertEqual(dashboard.summary.spending_percentage, Decimal("5"))
        self.assertEqual(dashboard.stats.transaction_count, 1)
        self.assertEqual(dashboard.categories[0].category, "Food")
        self.assertIsNone(dashboard.alert)
        self.assertEqual(self.sink.titles, ["Expense Added"])
        self.assertEqual(
            self.tracker.notifications.feed[0].message,
            "Successfully added expense of $50.00",
        )

    def test_invalid_form_is_reported_inline(self) -> None:
        result = self.tracker.add_expense(expense_form(amount="0", description="x"))

        self.assertFalse(result.success)
        self.assertEqual(set(result.errors), {"amount", "description"})
        self.assertEqual(self.tracker.store.list(), ())
        self.assertEqual(self.sink.titles, [])

    def test_delete_expense(self) -> None:
        expense = self.tracker.add_expense(expense_form(amount="20")).data

        result = self.tracker.delete_expense(expense.id)

        self.assertTrue(result.success)
        self.assertTrue(result.data)
        self.assertEqual(self.sink.titles, ["Expense Added", "Expense Deleted"])

    def test_delete_unknown_expense(self) -> None:
        result = self.tracker.delete_expense("missing")

        self.assertTrue(result.success)
        self.assertFalse(result.data)
        self.assertEqual(self.sink.titles, [])

    def test_get_expense(self) -> None:
        expense = self.tracker.add_expense(expense_form()).data

        self.assertEqual(self.tracker.get_expense(expense.id).data, expense)
        missing = self.tracker.get_expense("missing")
        self.assertFalse(missing.success)
        self.assertEqual(missing.error, EXPENSE_NOT_FOUND)

    def test_set_budget(self) -> None:
        result = self.tracker.set_budget("60")

        self.assertTrue(result.success)
        self.assertEqual(self.storage.get(MONTHLY_BUDGET_KEY), "60")
        self.assertEqual(self.sink.titles, ["Budget Updated"])

        self.tracker.add_expense(expense_form(amount="55"))
        self.assertEqual(self.sink.titles, ["Budget Updated", "Budget Warning", "Expense Added"])
        self.assertEqual(self.tracker.dashboard().data.alert.title, "Budget Warning")

    def test_set_negative_budget(self) -> None:
        result = self.tracker.set_budget("-10")

        self.assertFalse(result.success)
        self.assertEqual(result.errors, {"budget": "Budget cannot be negative."})

    def test_storage_failure_is_a_failed_result(self) -> None:
        with mock.patch.object(self.storage, "set", side_effect=PersistenceError("Could not write expenses to storage.")):
            result = self.tracker.add_expense(expense_form())

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Could not write expenses to storage.")
        self.assertEqual(self.tracker.store.list(), ())

    def test_search(self) -> None:
        self.tracker.add_expense(expense_form(description="Coffee Shop"))
        self.tracker.add_expense(expense_form(description="Haircut"))

        self.assertEqual(len(self.tracker.search("coffee").data), 1)

    def test_login_without_session(self) -> None:
        self.assertFalse(self.tracker.login("alice", "secret1").success)


class RemoteTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = mock.Mock()
        self.tracker = ExpenseTracker(
            backend=RemoteBackend(self.client, clock=lambda: NOW),
            storage=MemoryStorage(),
            notifications=NotificationCenter([]),
            today=lambda: TODAY,
        )

    def test_load_failure(self) -> None:
        self.client.list_expenses.side_effect = TransportError(
            "Too many requests. Please try again in a few moments."
        )

        result = self.tracker.load_expenses()

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Too many requests. Please try again in a few moments.")

    def test_get_expense_falls_back_to_service(self) -> None:
        self.client.get_expense.return_value = {
            "id": "3",
            "amount": "9.99",
            "description": "Snack",
            "createdAt": "2024-05-10T10:00:00",
        }

        result = self.tracker.get_expense("3")

        self.assertTrue(result.success)
        self.assertEqual(result.data.amount, Decimal("9.99"))

    def test_get_expense_missing_remotely(self) -> None:
        self.client.get_expense.return_value = None

        result = self.tracker.get_expense("3")

        self.assertFalse(result.success)
        self.assertEqual(result.error, EXPENSE_NOT_FOUND)


class RemoteTrackerResponseTests(unittest.TestCase):
    """Service failures surfaced through the HTTP client become failed results."""

    def setUp(self) -> None:
        self.opener = mock.Mock()
        self.storage = MemoryStorage()
        client = ApiClient(base_url="https://api.example.test", storage=self.storage, opener=self.opener)
        self.tracker = ExpenseTracker(
            backend=RemoteBackend(client, clock=lambda: NOW),
            storage=self.storage,
            notifications=NotificationCenter([]),
            today=lambda: TODAY,
        )

    def test_not_found_on_load_and_add(self) -> None:
        self.opener.side_effect = HTTPError("https://api.example.test/expenses", 404, "Not Found", hdrs=None, fp=None)

        loaded = self.tracker.load_expenses()
        added = self.tracker.add_expense(expense_form())

        self.assertFalse(loaded.success)
        self.assertEqual(loaded.error, NOT_FOUND_MESSAGE)
        self.assertEqual(self.tracker.store.state.error, NOT_FOUND_MESSAGE)
        self.assertFalse(added.success)
        self.assertEqual(added.error, NOT_FOUND_MESSAGE)
        self.assertEqual(self.tracker.store.list(), ())

    def test_undecodable_body_on_load(self) -> None:
        self.opener.return_value = io.BytesIO(b"\xff\xfe\xfa garbage")

        result = self.tracker.load_expenses()

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Unexpected response from server.")

    def test_record_without_id_on_get(self) -> None:
        self.opener.return_value = io.BytesIO(b'{"amount": "5"}')

        result = self.tracker.get_expense("3")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Unexpected response from server.")


class BuildTrackerTests(unittest.TestCase):
    def test_selects_backend(self) -> None:
        local = build_tracker(Settings(data_backend="local"), storage=MemoryStorage())
        remote = build_tracker(Settings(data_backend="remote"), storage=MemoryStorage())

        self.assertIsInstance(local.backend, LocalBackend)
        self.assertIsInstance(remote.backend, RemoteBackend)
        self.assertIsNotNone(remote.session)

    def test_uses_configured_default_budget(self) -> None:
        tracker = build_tracker(
            Settings(default_monthly_budget=Decimal("750")),
            storage=MemoryStorage(),
        )

        self.assertEqual(tracker.aggregator.monthly_budget, Decimal("750"))


if __name__ == "__main__":
    unittest.main()
