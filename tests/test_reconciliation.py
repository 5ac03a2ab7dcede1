from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import ErrorKind, ServiceError
from models import Account, AccountType, TransactionType, User
from schemas import AccountIn, SavingGoalIn, TransactionIn
from services import AccountService, SavingGoalService, TransactionService


def _user(session: Session, email: str = "ada@example.com") -> User:
    user = User(email=email, name="Ada", password_hash="x")
    session.add(user)
    session.commit()
    return user


def _txn(account_id: int, type: TransactionType, amount: str, **extra) -> TransactionIn:
    return TransactionIn(
        account_id=account_id,
        type=type,
        amount=Decimal(amount),
        description=f"{type.value} {amount}",
        date=date(2024, 6, 10),
        **extra,
    )


def test_reconcile_adds_linked_goal_transactions() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        accounts = AccountService(session, user.id)
        main = accounts.create(
            AccountIn(name="Main", type=AccountType.checking, currency="XAF")
        )
        other = accounts.create(
            AccountIn(name="Wallet", type=AccountType.cash, currency="XAF")
        )
        goal = SavingGoalService(session, user.id).create(
            SavingGoalIn(title="Laptop", target_amount=Decimal("900"), account_id=main.id)
        )

        txns = TransactionService(session, user.id)
        txns.create(_txn(main.id, TransactionType.income, "2000"))
        txns.create(_txn(main.id, TransactionType.expense, "500"))
        txns.create(
            _txn(other.id, TransactionType.saving, "100", saving_goal_id=goal.id)
        )

        reconciled = accounts.reconcile_balance(main.id)
        assert reconciled.balance == Decimal("1600")
        assert accounts.get(main.id).balance == Decimal("1600")

        again = accounts.reconcile_balance(main.id)
        assert again.balance == Decimal("1600")


def test_reconcile_keeps_seed_balance_without_history() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        accounts = AccountService(session, user.id)
        account = accounts.create(
            AccountIn(
                name="Savings",
                type=AccountType.savings,
                balance=Decimal("250.00"),
                currency="XAF",
            )
        )

        reconciled = accounts.reconcile_balance(account.id)
        assert reconciled.balance == Decimal("250.00")


def test_reconcile_overwrites_seed_and_allows_negative() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        accounts = AccountService(session, user.id)
        account = accounts.create(
            AccountIn(
                name="Card",
                type=AccountType.bank,
                balance=Decimal("1000.00"),
                currency="EUR",
            )
        )
        TransactionService(session, user.id).create(
            _txn(account.id, TransactionType.expense, "300")
        )

        reconciled = accounts.reconcile_balance(account.id)
        assert reconciled.balance == Decimal("-300")


def test_saving_type_on_account_is_subtracted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        accounts = AccountService(session, user.id)
        account = accounts.create(
            AccountIn(name="Main", type=AccountType.checking, currency="XAF")
        )
        txns = TransactionService(session, user.id)
        txns.create(_txn(account.id, TransactionType.income, "400"))
        txns.create(_txn(account.id, TransactionType.saving, "150"))

        assert accounts.reconcile_balance(account.id).balance == Decimal("250")


def test_reconcile_rejects_missing_and_foreign_accounts() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session)
        intruder = _user(session, "eve@example.com")
        account = Account(
            user_id=owner.id,
            name="Main",
            type=AccountType.checking,
            balance=Decimal("10"),
            currency="XAF",
        )
        session.add(account)
        session.commit()

        with pytest.raises(ServiceError) as missing:
            AccountService(session, owner.id).reconcile_balance(9999)
        assert missing.value.kind == ErrorKind.not_found

        with pytest.raises(ServiceError) as foreign:
            AccountService(session, intruder.id).reconcile_balance(account.id)
        assert foreign.value.kind == ErrorKind.forbidden
        assert session.get(Account, account.id).balance == Decimal("10")
