from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import AccountType, TransactionType, User
from schemas import AccountIn, ContributionIn, SavingGoalIn, SavingGoalUpdate
from services import AccountService, SavingGoalService, TransactionService


def _user(session: Session) -> User:
    user = User(email="ada@example.com", name="Ada", password_hash="x")
    session.add(user)
    session.commit()
    return user


def test_update_marks_goal_achieved() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        goals = SavingGoalService(session, user.id)
        goal = goals.create(SavingGoalIn(title="Bike", target_amount=Decimal("300")))
        assert goal.is_achieved is False

        goal = goals.update(goal.id, SavingGoalUpdate(current_amount=Decimal("299.99")))
        assert goal.is_achieved is False

        goal = goals.update(goal.id, SavingGoalUpdate(current_amount=Decimal("300")))
        assert goal.is_achieved is True


def test_contribution_books_saving_transaction() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        account = AccountService(session, user.id).create(
            AccountIn(name="Savings", type=AccountType.savings, currency="XAF")
        )
        goals = SavingGoalService(session, user.id)
        goal = goals.create(
            SavingGoalIn(
                title="Rent deposit",
                target_amount=Decimal("150"),
                account_id=account.id,
            )
        )

        goal = goals.contribute(
            goal.id, ContributionIn(amount=Decimal("100")), today=date(2024, 6, 1)
        )
        assert goal.current_amount == Decimal("100")
        assert goal.is_achieved is False

        goal = goals.contribute(
            goal.id, ContributionIn(amount=Decimal("60")), today=date(2024, 6, 2)
        )
        assert goal.current_amount == Decimal("160")
        assert goal.is_achieved is True

        booked = TransactionService(session, user.id).for_saving_goal(goal.id)
        assert len(booked) == 2
        assert {t.type for t in booked} == {TransactionType.saving}
        assert {t.account_id for t in booked} == {account.id}


def test_contribution_without_account_only_moves_progress() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        goals = SavingGoalService(session, user.id)
        goal = goals.create(
            SavingGoalIn(
                title="Phone", target_amount=Decimal("400"), deadline=date(2024, 7, 1)
            )
        )

        goals.contribute(goal.id, ContributionIn(amount=Decimal("100")))

        assert TransactionService(session, user.id).for_saving_goal(goal.id) == []
        (view,) = goals.with_status(today=date(2024, 6, 1))
        assert view.progress_percentage == Decimal("25")
        assert view.remaining_amount == Decimal("300")
        assert view.days_to_deadline == 30
