from datetime import date, datetime
from decimal import Decimal

from models import Budget, Transaction, TransactionType
from periods import days_remaining
from services import apply_spent_from_transactions, calculate_budget_status


NOW = datetime(2024, 6, 15, 12, 0, 0)


def _budget(planned: str, spent: str = "0", period: str = "monthly") -> Budget:
    return Budget(
        id=1,
        user_id=1,
        category_id=7,
        name="Food",
        amount_planned=Decimal(planned),
        amount_spent=Decimal(spent),
        period=period,
        created_at=NOW,
        updated_at=NOW,
    )


def _txn(amount: str, category_id, type=TransactionType.expense) -> Transaction:
    return Transaction(
        user_id=1,
        account_id=1,
        category_id=category_id,
        type=type,
        amount=Decimal(amount),
        description="",
        date=date(2024, 6, 3),
    )


def test_status_boundaries() -> None:
    assert calculate_budget_status(_budget("100", "100"), NOW).status == "danger"
    assert calculate_budget_status(_budget("100", "80"), NOW).status == "warning"
    assert calculate_budget_status(_budget("100", "79.99"), NOW).status == "good"


def test_zero_planned_reports_zero_percent() -> None:
    budget = _budget("100", "50")
    budget.amount_planned = Decimal("0")
    view = calculate_budget_status(budget, NOW)
    assert view.percentage_used == 0
    assert view.status == "good"
    assert view.remaining_amount == Decimal("-50")


def test_overspent_budget_scenario() -> None:
    budget = _budget("10000")
    transactions = [
        _txn("7000", 7),
        _txn("5000", 7),
        _txn("900", 8),
        _txn("300", None),
    ]

    spent = apply_spent_from_transactions(budget, transactions)
    view = calculate_budget_status(budget, NOW)

    assert spent == Decimal("12000")
    assert view.amount_spent == Decimal("12000")
    assert view.percentage_used == Decimal("120")
    assert view.remaining_amount == Decimal("-2000")
    assert view.status == "danger"


def test_spent_counts_income_in_budget_category() -> None:
    budget = _budget("1000")
    transactions = [_txn("200", 7), _txn("50", 7, TransactionType.income)]
    assert apply_spent_from_transactions(budget, transactions) == Decimal("250")


def test_view_keeps_budget_fields() -> None:
    view = calculate_budget_status(_budget("500", "100"), NOW)
    assert view.id == 1
    assert view.name == "Food"
    assert view.amount_planned == Decimal("500")
    assert view.remaining_amount == Decimal("400")
    assert view.percentage_used == Decimal("20")


def test_weekly_days_remaining() -> None:
    assert days_remaining("weekly", datetime(2024, 6, 2, 10, 0)) == 0
    assert days_remaining("weekly", datetime(2024, 6, 3, 10, 0)) == 6
    assert days_remaining("weekly", datetime(2024, 6, 6, 23, 0)) == 3


def test_monthly_and_yearly_days_remaining() -> None:
    assert days_remaining("monthly", NOW) == 15
    assert days_remaining("monthly", datetime(2024, 6, 30, 12, 0)) == 0
    assert days_remaining("monthly", datetime(2024, 2, 1, 0, 0)) == 28
    assert days_remaining("yearly", datetime(2024, 12, 31, 0, 0)) == 0
    assert days_remaining("yearly", datetime(2024, 12, 1, 0, 0)) == 30


def test_unknown_period_defaults_to_thirty_days() -> None:
    assert days_remaining("quarterly", NOW) == 30
    assert calculate_budget_status(_budget("10", period="daily"), NOW).days_remaining == 30
