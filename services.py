from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from errors import ErrorKind, ServiceError, forbidden, invalid, not_found
from models import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    SavingGoal,
    Task,
    TaskStatus,
    Transaction,
    TransactionType,
    User,
    UserPreferences,
)
from periods import days_remaining, local_now, month_window, resolve_stats_period
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    ContributionIn,
    LoginIn,
    PreferencesIn,
    PreferencesUpdate,
    RegisterIn,
    SavingGoalIn,
    SavingGoalUpdate,
    TaskIn,
    TaskUpdate,
    TransactionIn,
    TransactionUpdate,
    TransferIn,
)
from security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
WARNING_THRESHOLD = Decimal("80")
DANGER_THRESHOLD = Decimal("100")


DEFAULT_CATEGORIES: list[tuple[str, CategoryType, str, str]] = [
    ("Work", CategoryType.task, "md:work", "#FF6B6B"),
    ("Studies", CategoryType.task, "ion:book", "#4ECDC4"),
    ("Health", CategoryType.task, "fa5:heartbeat", "#FF7675"),
    ("Sport", CategoryType.task, "mci:run", "#74B9FF"),
    ("Errands", CategoryType.task, "md:shopping-cart", "#55A3FF"),
    ("Home", CategoryType.task, "ion:home", "#A29BFE"),
    ("Leisure", CategoryType.task, "fa:gamepad", "#FD79A8"),
    ("Food", CategoryType.expense, "md:restaurant", "#FF6B6B"),
    ("Transport", CategoryType.expense, "ion:car", "#4ECDC4"),
    ("Housing", CategoryType.expense, "fa5:house-user", "#45B7D1"),
    ("Health", CategoryType.expense, "fa5:clinic-medical", "#FF7675"),
    ("Subscriptions", CategoryType.expense, "mci:netflix", "#E17055"),
    ("Entertainment", CategoryType.expense, "md:movie", "#FD79A8"),
    ("Shopping", CategoryType.expense, "fa5:tshirt", "#FDCB6E"),
    ("Education", CategoryType.expense, "ion:school", "#6C5CE7"),
    ("Salary", CategoryType.revenue, "fa5:money-check-alt", "#00B894"),
    ("Business", CategoryType.revenue, "ion:briefcase", "#00CEC9"),
    ("Investments", CategoryType.revenue, "mci:chart-line", "#74B9FF"),
    ("Gifts", CategoryType.revenue, "ion:gift", "#FD79A8"),
    ("Refunds", CategoryType.revenue, "fa5:hand-holding-usd", "#55A3FF"),
]

DEFAULT_ACCOUNTS: list[tuple[str, AccountType, str, str]] = [
    ("Wallet (Cash)", AccountType.cash, "ion:cash", "#00B894"),
    ("Bank Account", AccountType.checking, "fa5:university", "#0984E3"),
    ("Mobile Money", AccountType.mobile_money, "mci:cellphone", "#FDCB6E"),
    ("Savings", AccountType.savings, "fa5:piggy-bank", "#A29BFE"),
]

# expense preference field -> default expense category name
PREFERENCE_BUDGETS: list[tuple[str, str]] = [
    ("food", "Food"),
    ("transport", "Transport"),
    ("housing", "Housing"),
    ("subscriptions", "Subscriptions"),
]


@contextmanager
def store_guard(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"store_error: action={action}")
        raise ServiceError(ErrorKind.internal, f"{action} failed") from exc


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(f"integrity_error: action={action} error={exc.orig}")
        raise ServiceError(
            ErrorKind.conflict, f"{action} conflicts with existing data"
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"store_error: action={action}")
        raise ServiceError(ErrorKind.internal, f"{action} failed") from exc


def _owned(session: Session, model, obj_id: int, user_id: int, label: str):
    """Fetch by primary key, then check ownership by plain equality."""
    obj = session.get(model, obj_id)
    if obj is None:
        raise not_found(label)
    if obj.user_id != user_id:
        logger.warning(
            f"ownership_violation: entity={label} id={obj_id} user_id={user_id}"
        )
        raise forbidden(label)
    return obj


def _apply_patch(obj, changes: dict[str, object]) -> None:
    for key, value in changes.items():
        setattr(obj, key, value)


def _paginate(items: Sequence, page: int, limit: int) -> list:
    start = (max(page, 1) - 1) * limit
    return list(items[start : start + limit])


# ------------------------------------------------------------------ views


@dataclass
class BudgetStatus:
    id: int
    user_id: int
    category_id: int
    name: str
    amount_planned: Decimal
    amount_spent: Decimal
    period: str
    created_at: datetime
    updated_at: datetime
    status: str
    percentage_used: Decimal
    remaining_amount: Decimal
    days_remaining: int


@dataclass(frozen=True)
class DebtInfo:
    account_id: int
    account_name: str
    debt_amount: Decimal
    currency: str


@dataclass
class DashboardSummary:
    total_balance: Decimal = ZERO
    monthly_income: Decimal = ZERO
    monthly_expenses: Decimal = ZERO
    monthly_savings: Decimal = ZERO
    total_debts: Decimal = ZERO
    budgets_overspent: int = 0
    saving_goals_achieved: int = 0


@dataclass
class FinanceDashboard:
    accounts: list[Account]
    current_month_transactions: list[Transaction]
    budgets_with_status: list[BudgetStatus]
    saving_goals: list[SavingGoal]
    debts: list[DebtInfo]
    recurring_transactions: list[Transaction]
    summary: DashboardSummary = field(default_factory=DashboardSummary)


@dataclass
class TransactionFilters:
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    type: Optional[TransactionType] = None
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class TransactionStats:
    period: str
    start: date
    end: date
    total_income: Decimal
    total_expense: Decimal
    net_amount: Decimal
    count: int


@dataclass(frozen=True)
class BudgetStats:
    total_planned: Decimal
    total_spent: Decimal
    remaining: Decimal
    budget_count: int
    over_budget_count: int
    utilization_rate: Decimal


@dataclass(frozen=True)
class TaskStats:
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    completion_rate: float


@dataclass
class SavingGoalStatus:
    id: int
    user_id: int
    account_id: Optional[int]
    title: str
    target_amount: Decimal
    current_amount: Decimal
    deadline: Optional[date]
    is_achieved: bool
    frequency: object
    created_at: datetime
    updated_at: datetime
    progress_percentage: Decimal
    remaining_amount: Decimal
    days_to_deadline: Optional[int]


# ---------------------------------------------------------- calculations


def budget_status_tier(percentage_used: Decimal) -> str:
    if percentage_used >= DANGER_THRESHOLD:
        return "danger"
    if percentage_used >= WARNING_THRESHOLD:
        return "warning"
    return "good"


def calculate_budget_status(budget: Budget, now: datetime) -> BudgetStatus:
    planned = Decimal(budget.amount_planned)
    spent = Decimal(budget.amount_spent or ZERO)
    percentage_used = ZERO
    if planned > 0:
        percentage_used = spent / planned * HUNDRED
    return BudgetStatus(
        id=budget.id,
        user_id=budget.user_id,
        category_id=budget.category_id,
        name=budget.name,
        amount_planned=planned,
        amount_spent=spent,
        period=budget.period,
        created_at=budget.created_at,
        updated_at=budget.updated_at,
        status=budget_status_tier(percentage_used),
        percentage_used=percentage_used,
        remaining_amount=planned - spent,
        days_remaining=days_remaining(budget.period, now),
    )


def apply_spent_from_transactions(
    budget: Budget, transactions: Sequence[Transaction]
) -> Decimal:
    """Set ``amount_spent`` from the transactions sharing the budget's category.

    Income and expense rows in that category both count; the budget object is
    changed in memory only.
    """
    spent = sum(
        (
            Decimal(txn.amount)
            for txn in transactions
            if txn.category_id is not None and txn.category_id == budget.category_id
        ),
        ZERO,
    )
    budget.amount_spent = spent
    return spent


def budget_statuses(
    budgets: Sequence[Budget], transactions: Sequence[Transaction], now: datetime
) -> list[BudgetStatus]:
    for budget in budgets:
        apply_spent_from_transactions(budget, transactions)
    return [calculate_budget_status(budget, now) for budget in budgets]


def detect_debts(accounts: Sequence[Account]) -> list[DebtInfo]:
    return [
        DebtInfo(
            account_id=account.id,
            account_name=account.name,
            debt_amount=-Decimal(account.balance),
            currency=account.currency,
        )
        for account in accounts
        if Decimal(account.balance) < 0
    ]


def summarize(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    budgets: Sequence[BudgetStatus],
    saving_goals: Sequence[SavingGoal],
    debts: Sequence[DebtInfo],
) -> DashboardSummary:
    summary = DashboardSummary()
    for account in accounts:
        # negative balances surface through debts only
        if account.balance > 0:
            summary.total_balance += Decimal(account.balance)
    for txn in transactions:
        if txn.type == TransactionType.income:
            summary.monthly_income += Decimal(txn.amount)
        elif txn.type == TransactionType.expense:
            summary.monthly_expenses += Decimal(txn.amount)
        else:
            summary.monthly_savings += Decimal(txn.amount)
    summary.total_debts = sum((debt.debt_amount for debt in debts), ZERO)
    summary.budgets_overspent = sum(1 for b in budgets if b.status == "danger")
    summary.saving_goals_achieved = sum(1 for g in saving_goals if g.is_achieved)
    return summary


# -------------------------------------------------------------- services


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _tokens(self, user: User) -> dict[str, object]:
        return {
            "access_token": create_access_token(user.id, user.email),
            "refresh_token": create_refresh_token(user.id, user.email),
            "token_type": "bearer",
            "user": user,
        }

    def register(self, data: RegisterIn) -> dict[str, object]:
        email = data.email.strip().lower()
        existing = self.session.scalar(
            select(User).where(func.lower(User.email) == email)
        )
        if existing:
            raise ServiceError(ErrorKind.conflict, "Email already registered")

        user = User(
            email=email,
            name=data.name.strip(),
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self.session.flush()
        InitializationService(self.session, user.id).seed_defaults()
        _commit(self.session, "register user")
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return self._tokens(user)

    def login(self, data: LoginIn) -> dict[str, object]:
        email = data.email.strip().lower()
        user = self.session.scalar(select(User).where(User.email == email))
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning("login_failed: reason=bad_credentials")
            raise ServiceError(ErrorKind.unauthorized, "Incorrect email or password")
        logger.info(f"login: user_id={user.id}")
        return self._tokens(user)

    def refresh(self, refresh_token: str) -> dict[str, object]:
        payload = decode_token(refresh_token, expected_type="refresh")
        user = self.session.get(User, payload["user_id"])
        if not user:
            raise ServiceError(ErrorKind.unauthorized, "User not found")
        return self._tokens(user)

    def profile(self, user_id: int) -> dict[str, object]:
        user = self.session.get(User, user_id)
        if not user:
            raise not_found("User")
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "created_at": user.created_at,
            "has_preferences": PreferencesService(self.session, user_id).exists(),
        }


class InitializationService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def seed_defaults(self) -> None:
        """Add the starter categories and accounts for a new user (no commit)."""
        currency = get_settings().default_currency
        for name, ctype, icon, color in DEFAULT_CATEGORIES:
            self.session.add(
                Category(
                    user_id=self.user_id, name=name, type=ctype, icon=icon, color=color
                )
            )
        for name, atype, icon, color in DEFAULT_ACCOUNTS:
            self.session.add(
                Account(
                    user_id=self.user_id,
                    name=name,
                    type=atype,
                    balance=ZERO,
                    currency=currency,
                    icon=icon,
                    color=color,
                )
            )
        self.session.flush()
        logger.info(
            f"defaults_seeded: user_id={self.user_id} "
            f"categories={len(DEFAULT_CATEGORIES)} accounts={len(DEFAULT_ACCOUNTS)}"
        )

    def create_budgets_from_preferences(self, expenses: dict[str, object]) -> int:
        categories = self.session.scalars(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == CategoryType.expense,
                Category.deleted_at.is_(None),
            )
        ).all()
        by_name = {c.name: c for c in categories}
        created = 0
        for pref_key, category_name in PREFERENCE_BUDGETS:
            amount = Decimal(str(expenses.get(pref_key) or 0))
            if amount <= 0:
                continue
            category = by_name.get(category_name)
            if not category:
                logger.warning(
                    f"auto_budget_skipped: user_id={self.user_id} "
                    f"category={category_name} reason=missing_category"
                )
                continue
            self.session.add(
                Budget(
                    user_id=self.user_id,
                    category_id=category.id,
                    name=category_name,
                    amount_planned=amount.quantize(Decimal("0.01")),
                    amount_spent=ZERO,
                    period="monthly",
                )
            )
            created += 1
        return created


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance=data.balance,
            currency=data.currency,
            icon=data.icon,
            color=data.color,
            account_number=data.account_number,
        )
        self.session.add(account)
        _commit(self.session, "create account")
        self.session.refresh(account)
        logger.info(
            f"account_created: account_id={account.id} user_id={self.user_id} "
            f"type={account.type.value}"
        )
        return account

    def get(self, account_id: int) -> Account:
        return _owned(self.session, Account, account_id, self.user_id, "Account")

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def paginate(self, page: int = 1, limit: int = 50) -> tuple[list[Account], int]:
        accounts = self.list_all()
        return _paginate(accounts, page, limit), len(accounts)

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self.get(account_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "type", "currency", "balance"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        _apply_patch(account, changes)
        _commit(self.session, "update account")
        self.session.refresh(account)
        logger.info(f"account_updated: account_id={account.id} user_id={self.user_id}")
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        self.session.delete(account)
        _commit(self.session, "delete account")
        logger.info(f"account_deleted: account_id={account_id} user_id={self.user_id}")

    def details(self, account_id: int) -> dict[str, object]:
        account = self.get(account_id)
        transactions = TransactionService(self.session, self.user_id).for_account(
            account.id
        )
        return {"account": account, "transactions": transactions}

    def reconcile_balance(self, account_id: int) -> Account:
        """Recompute the balance from transaction history and linked goals.

        With no transactions on the account the stored balance is kept as the
        seed. Otherwise income adds, every other type subtracts, and each
        transaction of a saving goal linked to this account adds its amount
        regardless of type. The result overwrites the stored balance, even
        when negative.
        """
        account = self.get(account_id)
        txn_service = TransactionService(self.session, self.user_id)
        with store_guard(self.session, "reconcile balance"):
            transactions = txn_service.for_account(account.id)
            if not transactions:
                logger.info(
                    f"reconcile_skipped: account_id={account.id} reason=no_transactions"
                )
                return account

            goals = SavingGoalService(self.session, self.user_id).for_account(
                account.id
            )

            total = ZERO
            for txn in transactions:
                if txn.type == TransactionType.income:
                    total += Decimal(txn.amount)
                else:
                    total -= Decimal(txn.amount)

            for goal in goals:
                for txn in txn_service.for_saving_goal(goal.id):
                    total += Decimal(txn.amount)

        account.balance = total
        _commit(self.session, "update account balance")
        self.session.refresh(account)
        logger.info(
            f"reconciled: account_id={account.id} balance={total} "
            f"transactions={len(transactions)} goals={len(goals)}"
        )
        return account


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _base(self):
        return (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )

    def _check_refs(
        self,
        account_id: Optional[int],
        category_id: Optional[int],
        saving_goal_id: Optional[int],
    ) -> None:
        if account_id is not None:
            _owned(self.session, Account, account_id, self.user_id, "Account")
        if category_id is not None:
            category = CategoryService(self.session, self.user_id).get(category_id)
            if category.type == CategoryType.task:
                raise invalid("Task categories cannot be used for transactions")
        if saving_goal_id is not None:
            _owned(self.session, SavingGoal, saving_goal_id, self.user_id, "Saving goal")

    def create(self, data: TransactionIn) -> Transaction:
        self._check_refs(data.account_id, data.category_id, data.saving_goal_id)
        txn = Transaction(
            user_id=self.user_id,
            account_id=data.account_id,
            category_id=data.category_id,
            saving_goal_id=data.saving_goal_id,
            type=data.type,
            amount=data.amount,
            description=data.description.strip(),
            date=data.date,
            recurring=data.recurring,
        )
        self.session.add(txn)
        _commit(self.session, "create transaction")
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: transaction_id={txn.id} user_id={self.user_id} "
            f"type={txn.type.value} amount={txn.amount}"
        )
        return txn

    def transfer(self, data: TransferIn) -> tuple[Transaction, Transaction]:
        if data.account_id == data.to_account_id:
            raise invalid("Source and destination accounts must differ")
        self._check_refs(data.account_id, None, None)
        self._check_refs(data.to_account_id, None, None)
        debit = Transaction(
            user_id=self.user_id,
            account_id=data.account_id,
            type=TransactionType.expense,
            amount=data.amount,
            description=data.description.strip(),
            date=data.date,
        )
        credit = Transaction(
            user_id=self.user_id,
            account_id=data.to_account_id,
            type=TransactionType.income,
            amount=data.amount,
            description=data.description.strip(),
            date=data.date,
        )
        self.session.add_all([debit, credit])
        _commit(self.session, "create transfer")
        self.session.refresh(debit)
        self.session.refresh(credit)
        logger.info(
            f"transfer_created: from_account={data.account_id} "
            f"to_account={data.to_account_id} amount={data.amount}"
        )
        return debit, credit

    def get(self, transaction_id: int) -> Transaction:
        return _owned(
            self.session, Transaction, transaction_id, self.user_id, "Transaction"
        )

    def list_all(self) -> list[Transaction]:
        return list(self.session.scalars(self._base()).all())

    def search(
        self, filters: TransactionFilters, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[Transaction], int]:
        stmt = self._base()
        if filters.account_id is not None:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.category_id is not None:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.type is not None:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.start is not None:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(Transaction.date <= filters.end)
        total = self.session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        items = self.session.scalars(stmt.limit(limit).offset(offset)).all()
        return list(items), int(total or 0)

    def for_account(self, account_id: int) -> list[Transaction]:
        stmt = self._base().where(Transaction.account_id == account_id)
        return list(self.session.scalars(stmt).all())

    def for_saving_goal(self, saving_goal_id: int) -> list[Transaction]:
        stmt = self._base().where(Transaction.saving_goal_id == saving_goal_id)
        return list(self.session.scalars(stmt).all())

    def by_date_range(self, start: date, end: date) -> list[Transaction]:
        stmt = self._base().where(Transaction.date >= start, Transaction.date <= end)
        return list(self.session.scalars(stmt).all())

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("account_id", "type", "amount", "description", "date", "recurring"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        self._check_refs(
            changes.get("account_id"),
            changes.get("category_id"),
            changes.get("saving_goal_id"),
        )
        _apply_patch(txn, changes)
        _commit(self.session, "update transaction")
        self.session.refresh(txn)
        logger.info(f"transaction_updated: transaction_id={txn.id} user_id={self.user_id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        _commit(self.session, "delete transaction")
        logger.info(
            f"transaction_deleted: transaction_id={transaction_id} user_id={self.user_id}"
        )

    def stats(
        self, period: Optional[str], *, today: Optional[date] = None
    ) -> TransactionStats:
        window = resolve_stats_period(period, today=today)
        transactions = self.by_date_range(window.start, window.end)
        income = sum(
            (Decimal(t.amount) for t in transactions if t.type == TransactionType.income),
            ZERO,
        )
        expense = sum(
            (Decimal(t.amount) for t in transactions if t.type == TransactionType.expense),
            ZERO,
        )
        return TransactionStats(
            period=window.slug,
            start=window.start,
            end=window.end,
            total_income=income,
            total_expense=expense,
            net_amount=income - expense,
            count=len(transactions),
        )


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: BudgetIn) -> Budget:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        if category.type == CategoryType.task:
            raise invalid("Budgets cannot use task categories")
        budget = Budget(
            user_id=self.user_id,
            category_id=category.id,
            name=data.name.strip(),
            amount_planned=data.amount_planned,
            amount_spent=ZERO,
            period=data.period.value,
        )
        self.session.add(budget)
        _commit(self.session, "create budget")
        self.session.refresh(budget)
        logger.info(
            f"budget_created: budget_id={budget.id} user_id={self.user_id} "
            f"category_id={budget.category_id} period={budget.period}"
        )
        return budget

    def get(self, budget_id: int) -> Budget:
        return _owned(self.session, Budget, budget_id, self.user_id, "Budget")

    def list_all(self, category_id: Optional[int] = None) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
        )
        if category_id is not None:
            stmt = stmt.where(Budget.category_id == category_id)
        return list(self.session.scalars(stmt).all())

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "amount_planned", "amount_spent", "period"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        if "period" in changes:
            changes["period"] = changes["period"].value
        _apply_patch(budget, changes)
        _commit(self.session, "update budget")
        self.session.refresh(budget)
        logger.info(f"budget_updated: budget_id={budget.id} user_id={self.user_id}")
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        _commit(self.session, "delete budget")
        logger.info(f"budget_deleted: budget_id={budget_id} user_id={self.user_id}")

    def with_status(self, now: Optional[datetime] = None) -> list[BudgetStatus]:
        now = now or local_now()
        start, end = month_window(now)
        with store_guard(self.session, "budget status"):
            transactions = TransactionService(self.session, self.user_id).by_date_range(
                start.date(), end.date()
            )
            budgets = self.list_all()
        return budget_statuses(budgets, transactions, now)

    def stats(self, now: Optional[datetime] = None) -> BudgetStats:
        views = self.with_status(now)
        total_planned = sum((v.amount_planned for v in views), ZERO)
        total_spent = sum((v.amount_spent for v in views), ZERO)
        utilization = ZERO
        if total_planned > 0:
            utilization = total_spent / total_planned * HUNDRED
        return BudgetStats(
            total_planned=total_planned,
            total_spent=total_spent,
            remaining=total_planned - total_spent,
            budget_count=len(views),
            over_budget_count=sum(1 for v in views if v.amount_spent > v.amount_planned),
            utilization_rate=utilization,
        )


class SavingGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: SavingGoalIn) -> SavingGoal:
        if data.account_id is not None:
            _owned(self.session, Account, data.account_id, self.user_id, "Account")
        goal = SavingGoal(
            user_id=self.user_id,
            account_id=data.account_id,
            title=data.title.strip(),
            target_amount=data.target_amount,
            current_amount=ZERO,
            deadline=data.deadline,
            is_achieved=False,
            frequency=data.frequency,
        )
        self.session.add(goal)
        _commit(self.session, "create saving goal")
        self.session.refresh(goal)
        logger.info(
            f"saving_goal_created: goal_id={goal.id} user_id={self.user_id} "
            f"target={goal.target_amount}"
        )
        return goal

    def get(self, goal_id: int) -> SavingGoal:
        return _owned(self.session, SavingGoal, goal_id, self.user_id, "Saving goal")

    def list_all(self) -> list[SavingGoal]:
        stmt = (
            select(SavingGoal)
            .where(SavingGoal.user_id == self.user_id)
            .order_by(SavingGoal.created_at.desc(), SavingGoal.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def for_account(self, account_id: int) -> list[SavingGoal]:
        stmt = select(SavingGoal).where(
            SavingGoal.user_id == self.user_id, SavingGoal.account_id == account_id
        )
        return list(self.session.scalars(stmt).all())

    def update(self, goal_id: int, data: SavingGoalUpdate) -> SavingGoal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("title", "target_amount", "current_amount", "is_achieved"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        if changes.get("account_id") is not None:
            _owned(self.session, Account, changes["account_id"], self.user_id, "Account")
        _apply_patch(goal, changes)
        if goal.current_amount >= goal.target_amount:
            goal.is_achieved = True
        _commit(self.session, "update saving goal")
        self.session.refresh(goal)
        logger.info(f"saving_goal_updated: goal_id={goal.id} user_id={self.user_id}")
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        _commit(self.session, "delete saving goal")
        logger.info(f"saving_goal_deleted: goal_id={goal_id} user_id={self.user_id}")

    def contribute(
        self, goal_id: int, data: ContributionIn, *, today: Optional[date] = None
    ) -> SavingGoal:
        goal = self.get(goal_id)
        account_id = data.account_id if data.account_id is not None else goal.account_id
        if account_id is not None:
            _owned(self.session, Account, account_id, self.user_id, "Account")
            self.session.add(
                Transaction(
                    user_id=self.user_id,
                    account_id=account_id,
                    saving_goal_id=goal.id,
                    type=TransactionType.saving,
                    amount=data.amount,
                    description=f"Contribution: {goal.title}",
                    date=data.date or today or local_now().date(),
                )
            )
        goal.current_amount = Decimal(goal.current_amount) + data.amount
        if goal.current_amount >= goal.target_amount:
            goal.is_achieved = True
        _commit(self.session, "add contribution")
        self.session.refresh(goal)
        logger.info(
            f"contribution_added: goal_id={goal.id} amount={data.amount} "
            f"account_id={account_id} achieved={goal.is_achieved}"
        )
        return goal

    def with_status(self, today: Optional[date] = None) -> list[SavingGoalStatus]:
        today = today or local_now().date()
        views = []
        for goal in self.list_all():
            target = Decimal(goal.target_amount)
            current = Decimal(goal.current_amount)
            progress = current / target * HUNDRED if target > 0 else ZERO
            views.append(
                SavingGoalStatus(
                    id=goal.id,
                    user_id=goal.user_id,
                    account_id=goal.account_id,
                    title=goal.title,
                    target_amount=target,
                    current_amount=current,
                    deadline=goal.deadline,
                    is_achieved=goal.is_achieved,
                    frequency=goal.frequency,
                    created_at=goal.created_at,
                    updated_at=goal.updated_at,
                    progress_percentage=progress,
                    remaining_amount=max(target - current, ZERO),
                    days_to_deadline=(
                        (goal.deadline - today).days if goal.deadline else None
                    ),
                )
            )
        return views


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, type: Optional[CategoryType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id, Category.deleted_at.is_(None))
            .order_by(Category.type, Category.name)
        )
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = _owned(self.session, Category, category_id, self.user_id, "Category")
        if category.deleted_at is not None:
            raise not_found("Category")
        return category

    def _has_children(self, category_id: int) -> bool:
        count = self.session.scalar(
            select(func.count())
            .select_from(Category)
            .where(Category.parent_id == category_id, Category.deleted_at.is_(None))
        )
        return bool(count)

    def _check_parent(
        self, parent_id: int, ctype: CategoryType, own_id: Optional[int] = None
    ) -> None:
        # one level of nesting only
        if own_id is not None and parent_id == own_id:
            raise invalid("A category cannot be its own parent")
        parent = self.get(parent_id)
        if parent.parent_id is not None:
            raise invalid("Subcategories cannot have children")
        if own_id is not None and self._has_children(own_id):
            raise invalid("A category with subcategories cannot have a parent")
        if parent.type != ctype:
            raise invalid("Parent category type mismatch")

    def create(self, data: CategoryIn) -> Category:
        if data.parent_id is not None:
            self._check_parent(data.parent_id, data.type)
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            parent_id=data.parent_id,
            icon=data.icon,
            color=data.color,
        )
        self.session.add(category)
        _commit(self.session, "create category")
        self.session.refresh(category)
        logger.info(
            f"category_created: category_id={category.id} user_id={self.user_id} "
            f"type={category.type.value}"
        )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "type", "icon", "color"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        new_type = changes.get("type", category.type)
        parent_id = changes.get("parent_id", category.parent_id)
        if parent_id is not None and ("parent_id" in changes or "type" in changes):
            self._check_parent(parent_id, new_type, category.id)
        if new_type != category.type and self._has_children(category.id):
            raise invalid("Parent category type mismatch")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        _apply_patch(category, changes)
        _commit(self.session, "update category")
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        category.deleted_at = datetime.utcnow()
        _commit(self.session, "delete category")
        logger.info(
            f"category_deleted: category_id={category_id} user_id={self.user_id} soft=true"
        )


class TaskService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: TaskIn) -> Task:
        if data.category_id is not None:
            CategoryService(self.session, self.user_id).get(data.category_id)
        task = Task(
            user_id=self.user_id,
            category_id=data.category_id,
            title=data.title.strip(),
            description=data.description,
            priority=data.priority,
            due_date=data.due_date,
            duration_planned=data.duration_planned,
            recurrence_rule=data.recurrence_rule,
            status=TaskStatus.pending,
        )
        self.session.add(task)
        _commit(self.session, "create task")
        self.session.refresh(task)
        logger.info(f"task_created: task_id={task.id} user_id={self.user_id}")
        return task

    def get(self, task_id: int) -> Task:
        return _owned(self.session, Task, task_id, self.user_id, "Task")

    def list_all(self, status: Optional[TaskStatus] = None) -> list[Task]:
        stmt = (
            select(Task)
            .where(Task.user_id == self.user_id)
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        if status is not None:
            stmt = stmt.where(Task.status == status)
        return list(self.session.scalars(stmt).all())

    def update(self, task_id: int, data: TaskUpdate) -> Task:
        task = self.get(task_id)
        changes = data.model_dump(exclude_unset=True)
        for key in ("title", "priority", "status", "duration_planned", "duration_spent"):
            if key in changes and changes[key] is None:
                raise invalid(f"{key} cannot be null")
        if changes.get("category_id") is not None:
            CategoryService(self.session, self.user_id).get(changes["category_id"])
        _apply_patch(task, changes)
        _commit(self.session, "update task")
        self.session.refresh(task)
        logger.info(f"task_updated: task_id={task.id} user_id={self.user_id}")
        return task

    def complete(self, task_id: int) -> Task:
        return self.update(task_id, TaskUpdate(status=TaskStatus.completed))

    def delete(self, task_id: int) -> None:
        task = self.get(task_id)
        self.session.delete(task)
        _commit(self.session, "delete task")
        logger.info(f"task_deleted: task_id={task_id} user_id={self.user_id}")

    def stats(self) -> TaskStats:
        tasks = self.list_all()
        completed = sum(1 for t in tasks if t.status == TaskStatus.completed)
        total = len(tasks)
        rate = completed / total * 100 if total else 0.0
        return TaskStats(
            total_tasks=total,
            completed_tasks=completed,
            pending_tasks=total - completed,
            completion_rate=rate,
        )


class PreferencesService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _find(self) -> Optional[UserPreferences]:
        return self.session.scalar(
            select(UserPreferences).where(UserPreferences.user_id == self.user_id)
        )

    def exists(self) -> bool:
        return self._find() is not None

    def get(self) -> UserPreferences:
        prefs = self._find()
        if not prefs:
            raise not_found("Preferences")
        return prefs

    def create(self, data: PreferencesIn) -> UserPreferences:
        if self.exists():
            raise ServiceError(ErrorKind.conflict, "Preferences already exist")
        dumped = data.model_dump()
        prefs = UserPreferences(user_id=self.user_id, **dumped)
        self.session.add(prefs)
        budgets_created = 0
        if data.expenses.auto_budget:
            budgets_created = InitializationService(
                self.session, self.user_id
            ).create_budgets_from_preferences(dumped["expenses"])
        _commit(self.session, "create preferences")
        self.session.refresh(prefs)
        logger.info(
            f"preferences_created: user_id={self.user_id} "
            f"auto_budgets={budgets_created}"
        )
        return prefs

    def update(self, data: PreferencesUpdate) -> UserPreferences:
        prefs = self.get()
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        _apply_patch(prefs, changes)
        _commit(self.session, "update preferences")
        self.session.refresh(prefs)
        logger.info(
            f"preferences_updated: user_id={self.user_id} sections={sorted(changes)}"
        )
        return prefs

    def delete(self) -> None:
        prefs = self.get()
        self.session.delete(prefs)
        _commit(self.session, "delete preferences")
        logger.info(f"preferences_deleted: user_id={self.user_id}")


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def build(self, now: Optional[datetime] = None) -> FinanceDashboard:
        """Assemble the finance dashboard snapshot.

        Every read happens on each call; a store failure in any step aborts
        the whole build with an internal error.
        """
        now = now or local_now()
        start, end = month_window(now)
        txn_service = TransactionService(self.session, self.user_id)
        with store_guard(self.session, "build dashboard"):
            accounts = AccountService(self.session, self.user_id).list_all()
            month_transactions = txn_service.by_date_range(start.date(), end.date())
            budgets = BudgetService(self.session, self.user_id).list_all()
            statuses = budget_statuses(budgets, month_transactions, now)
            goals = SavingGoalService(self.session, self.user_id).list_all()
            debts = detect_debts(accounts)
            recurring = [t for t in txn_service.list_all() if t.recurring]

        summary = summarize(accounts, month_transactions, statuses, goals, debts)
        logger.info(
            f"dashboard_built: user_id={self.user_id} accounts={len(accounts)} "
            f"month_transactions={len(month_transactions)} budgets={len(statuses)} "
            f"debts={len(debts)}"
        )
        return FinanceDashboard(
            accounts=accounts,
            current_month_transactions=month_transactions,
            budgets_with_status=statuses,
            saving_goals=goals,
            debts=debts,
            recurring_transactions=recurring,
            summary=summary,
        )
