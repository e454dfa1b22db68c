import unittest
from datetime import date, datetime
from decimal import Decimal

from expense_tracker.backends import LocalBackend
from expense_tracker.budget_engine import (
    BudgetAggregator,
    attribution_date,
    category_breakdown,
    compute,
    expense_stats,
    validate_budget,
)
from expense_tracker.errors import PersistenceError, ValidationError
from expense_tracker.expense_store import ExpenseStore
from expense_tracker.models import Expense, ExpenseDraft
from expense_tracker.storage import MONTHLY_BUDGET_KEY, MemoryStorage

AS_OF = date(2024, 5, 15)


def make_expense(
    expense_id: str,
    amount,
    on: date | None,
    category: str = "Food",
    created_at: datetime = datetime(2024, 5, 1, 9, 0),
) -> Expense:
    return Expense(
        id=expense_id,
        amount=amount,
        description=f"Expense {expense_id}",
        category=category,
        created_at=created_at,
        date=on,
    )


class FailingWriteStorage(MemoryStorage):
    def set(self, key: str, value: str) -> None:
        raise PersistenceError("Could not write to storage.")


class ComputeTests(unittest.TestCase):
    def test_sums_current_month_only(self) -> None:
        expenses = [
            make_expense("1", Decimal("50"), date(2024, 5, 1)),
            make_expense("2", Decimal("25"), date(2024, 5, 3)),
            make_expense("3", Decimal("400"), date(2024, 4, 30)),
            make_expense("4", Decimal("10"), date(2023, 5, 2)),
        ]

        result = compute(expenses, Decimal("100"), AS_OF)

        self.assertEqual(result.total_spent, Decimal("75"))
        self.assertEqual(result.remaining_budget, Decimal("25"))
        self.assertEqual(result.spending_percentage, Decimal("75"))

    def test_single_expense_against_default_budget(self) -> None:
        result = compute(
            [make_expense("1", Decimal("50"), AS_OF)],
            Decimal("1000"),
            AS_OF,
        )

        self.assertEqual(result.total_spent, Decimal("50"))
        self.assertEqual(result.remaining_budget, Decimal("950"))
        self.assertEqual(result.spending_percentage, Decimal("5"))

    def test_remaining_never_negative_and_percentage_unbounded(self) -> None:
        result = compute(
            [make_expense("1", Decimal("150"), AS_OF)],
            Decimal("100"),
            AS_OF,
        )

        self.assertEqual(result.remaining_budget, Decimal("0"))
        self.assertEqual(result.spending_percentage, Decimal("150"))

    def test_zero_budget_has_zero_percentage(self) -> None:
        result = compute(
            [make_expense("1", Decimal("80"), AS_OF)],
            Decimal("0"),
            AS_OF,
        )

        self.assertEqual(result.total_spent, Decimal("80"))
        self.assertEqual(result.remaining_budget, Decimal("0"))
        self.assertEqual(result.spending_percentage, Decimal("0"))

    def test_missing_date_falls_back_to_created_at(self) -> None:
        in_month = make_expense("1", Decimal("20"), None, created_at=datetime(2024, 5, 2, 8, 0))
        last_month = make_expense("2", Decimal("30"), None, created_at=datetime(2024, 4, 2, 8, 0))

        self.assertEqual(attribution_date(in_month), date(2024, 5, 2))
        result = compute([in_month, last_month], Decimal("100"), AS_OF)

        self.assertEqual(result.total_spent, Decimal("20"))

    def test_unusable_amounts_count_as_zero(self) -> None:
        expenses = [
            make_expense("1", "not-a-number", AS_OF),
            make_expense("2", None, AS_OF),
            make_expense("3", "12.50", AS_OF),
        ]

        result = compute(expenses, Decimal("100"), AS_OF)

        self.assertEqual(result.total_spent, Decimal("12.50"))

    def test_compute_is_pure(self) -> None:
        expenses = [
            make_expense("1", Decimal("33.33"), AS_OF),
            make_expense("2", Decimal("66.67"), date(2024, 5, 9)),
        ]
        snapshot = list(expenses)

        first = compute(expenses, Decimal("300"), AS_OF)
        second = compute(expenses, Decimal("300"), AS_OF)

        self.assertEqual(first, second)
        self.assertEqual(expenses, snapshot)


class ValidateBudgetTests(unittest.TestCase):
    def test_accepts_zero_and_numeric_strings(self) -> None:
        self.assertEqual(validate_budget(0), Decimal("0"))
        self.assertEqual(validate_budget(" 1500.50 "), Decimal("1500.50"))

    def test_rejects_negative_and_garbage(self) -> None:
        for value in (-1, "-0.01", "abc", "", None, "NaN"):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    validate_budget(value)


class DashboardFigureTests(unittest.TestCase):
    def test_expense_stats(self) -> None:
        expenses = [
            make_expense(str(index), Decimal("10"), AS_OF) for index in range(1, 7)
        ] + [make_expense("old", Decimal("100"), date(2024, 1, 1))]

        stats = expense_stats(expenses, AS_OF)

        self.assertEqual(stats.total, Decimal("160"))
        self.assertEqual(stats.monthly_total, Decimal("60"))
        self.assertEqual(stats.transaction_count, 7)
        self.assertEqual([item.id for item in stats.recent_expenses], ["1", "2", "3", "4", "5"])

    def test_category_breakdown_orders_by_total(self) -> None:
        expenses = [
            make_expense("1", Decimal("30"), AS_OF, category="Food"),
            make_expense("2", Decimal("50"), AS_OF, category="Utilities"),
            make_expense("3", Decimal("20"), AS_OF, category="Food"),
            make_expense("4", Decimal("999"), date(2024, 3, 1), category="Travel"),
        ]

        breakdown = category_breakdown(expenses, AS_OF)

        self.assertEqual([item.category for item in breakdown], ["Food", "Utilities"])
        self.assertEqual(breakdown[0].total_spent, Decimal("50"))
        self.assertEqual(breakdown[0].percentage_of_total, Decimal("50"))

    def test_category_breakdown_empty_month(self) -> None:
        self.assertEqual(category_breakdown([], AS_OF), [])


class BudgetAggregatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryStorage()
        backend = LocalBackend(
            self.storage,
            clock=lambda: datetime(2024, 5, 15, 12, 0),
        )
        self.store = ExpenseStore(backend, today=lambda: AS_OF)

    def make_aggregator(self, storage=None) -> BudgetAggregator:
        return BudgetAggregator(self.store, storage or self.storage, today=lambda: AS_OF)

    def test_default_budget_written_on_first_use(self) -> None:
        aggregator = self.make_aggregator()

        self.assertEqual(aggregator.monthly_budget, Decimal("1000"))
        self.assertEqual(self.storage.get(MONTHLY_BUDGET_KEY), "1000")

    def test_loads_saved_budget(self) -> None:
        self.storage.set(MONTHLY_BUDGET_KEY, "250.5")

        aggregator = self.make_aggregator()

        self.assertEqual(aggregator.monthly_budget, Decimal("250.5"))

    def test_recomputes_after_store_mutation(self) -> None:
        aggregator = self.make_aggregator()
        snapshots = []
        aggregator.subscribe(snapshots.append)

        self.store.add(ExpenseDraft(amount=Decimal("50"), description="Lunch", category="Food"))

        summary = aggregator.summary()
        self.assertEqual(summary.total_spent, Decimal("50"))
        self.assertEqual(summary.remaining_budget, Decimal("950"))
        self.assertEqual(summary.spending_percentage, Decimal("5"))
        self.assertEqual(len(snapshots), 1)
        self.assertEqual(snapshots[0].summary, summary)

    def test_set_budget_persists_and_broadcasts(self) -> None:
        aggregator = self.make_aggregator()
        snapshots = []
        aggregator.subscribe(snapshots.append)

        aggregator.set_budget("400")

        self.assertEqual(self.storage.get(MONTHLY_BUDGET_KEY), "400")
        self.assertEqual(snapshots[-1].monthly_budget, Decimal("400"))

    def test_set_budget_rejects_negative(self) -> None:
        aggregator = self.make_aggregator()

        with self.assertRaises(ValidationError):
            aggregator.set_budget(-5)

        self.assertEqual(aggregator.monthly_budget, Decimal("1000"))

    def test_failed_budget_write_is_not_committed(self) -> None:
        storage = FailingWriteStorage({MONTHLY_BUDGET_KEY: "300"})
        aggregator = self.make_aggregator(storage)

        with self.assertRaises(PersistenceError):
            aggregator.set_budget("900")

        self.assertEqual(aggregator.monthly_budget, Decimal("300"))


if __name__ == "__main__":
    unittest.main()
