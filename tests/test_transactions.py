from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import ErrorKind, ServiceError
from models import AccountType, CategoryType, TransactionType, User
from schemas import AccountIn, CategoryIn, TransactionIn, TransactionUpdate, TransferIn
from services import (
    AccountService,
    CategoryService,
    TransactionFilters,
    TransactionService,
)


def _setup(session: Session):
    user = User(email="ada@example.com", name="Ada", password_hash="x")
    session.add(user)
    session.commit()
    accounts = AccountService(session, user.id)
    main = accounts.create(AccountIn(name="Main", type=AccountType.checking, currency="XAF"))
    cash = accounts.create(AccountIn(name="Cash", type=AccountType.cash, currency="XAF"))
    return user, main, cash


def test_filters_and_stats() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, main, cash = _setup(session)
        food = CategoryService(session, user.id).create(
            CategoryIn(name="Food", type=CategoryType.expense)
        )
        txns = TransactionService(session, user.id)
        for account_id, type, amount, day, category_id in [
            (main.id, TransactionType.income, "900", date(2024, 6, 3), None),
            (main.id, TransactionType.expense, "120", date(2024, 6, 5), food.id),
            (cash.id, TransactionType.expense, "30", date(2024, 6, 1), food.id),
            (cash.id, TransactionType.income, "40", date(2024, 5, 20), None),
        ]:
            txns.create(
                TransactionIn(
                    account_id=account_id,
                    category_id=category_id,
                    type=type,
                    amount=Decimal(amount),
                    description="entry",
                    date=day,
                )
            )

        items, total = txns.search(TransactionFilters(category_id=food.id))
        assert total == 2
        assert [t.amount for t in items] == [Decimal("120"), Decimal("30")]

        items, total = txns.search(
            TransactionFilters(account_id=cash.id, start=date(2024, 6, 1))
        )
        assert total == 1

        items, total = txns.search(TransactionFilters(), limit=1, offset=1)
        assert total == 4
        assert len(items) == 1

        week = txns.stats("week", today=date(2024, 6, 5))
        assert (week.start, week.end) == (date(2024, 6, 3), date(2024, 6, 5))
        assert week.total_income == Decimal("900")
        assert week.total_expense == Decimal("120")
        assert week.count == 2

        month = txns.stats(None, today=date(2024, 6, 5))
        assert month.period == "month"
        assert month.net_amount == Decimal("750")
        assert month.count == 3


def test_transfer_creates_paired_entries() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, main, cash = _setup(session)
        txns = TransactionService(session, user.id)

        debit, credit = txns.transfer(
            TransferIn(
                account_id=main.id,
                to_account_id=cash.id,
                amount=Decimal("50"),
                description="ATM",
                date=date(2024, 6, 1),
            )
        )
        assert (debit.account_id, debit.type) == (main.id, TransactionType.expense)
        assert (credit.account_id, credit.type) == (cash.id, TransactionType.income)
        assert debit.amount == credit.amount == Decimal("50")

        with pytest.raises(ServiceError, match="must differ"):
            txns.transfer(
                TransferIn(
                    account_id=main.id,
                    to_account_id=main.id,
                    amount=Decimal("1"),
                    description="loop",
                    date=date(2024, 6, 1),
                )
            )


def test_references_are_checked() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, main, _cash = _setup(session)
        errands = CategoryService(session, user.id).create(
            CategoryIn(name="Errands", type=CategoryType.task)
        )
        txns = TransactionService(session, user.id)

        with pytest.raises(ServiceError) as missing:
            txns.create(
                TransactionIn(
                    account_id=4242,
                    type=TransactionType.expense,
                    amount=Decimal("5"),
                    description="ghost",
                    date=date(2024, 6, 1),
                )
            )
        assert missing.value.kind == ErrorKind.not_found

        with pytest.raises(ServiceError) as task_category:
            txns.create(
                TransactionIn(
                    account_id=main.id,
                    category_id=errands.id,
                    type=TransactionType.expense,
                    amount=Decimal("5"),
                    description="groceries",
                    date=date(2024, 6, 1),
                )
            )
        assert task_category.value.kind == ErrorKind.validation

        txn = txns.create(
            TransactionIn(
                account_id=main.id,
                type=TransactionType.expense,
                amount=Decimal("5"),
                description="coffee",
                date=date(2024, 6, 1),
            )
        )
        txn = txns.update(txn.id, TransactionUpdate(amount=Decimal("6.50")))
        assert txn.amount == Decimal("6.50")
        assert txn.description == "coffee"

        # the cached balance only moves on reconcile
        assert AccountService(session, user.id).get(main.id).balance == 0
