import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import (
    AccountType,
    BudgetPeriod,
    CategoryType,
    GoalFrequency,
    TaskPriority,
    TaskStatus,
    TransactionType,
)


Amount = Decimal


def _upper_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    return value.strip().upper()


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------- auth


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserOut(ORMModel):
    id: int
    email: str
    name: str
    created_at: datetime


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserOut


class ProfileOut(UserOut):
    has_preferences: bool


# ------------------------------------------------------------ accounts


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType
    balance: Amount = Field(default=Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    currency: str = Field(..., min_length=3, max_length=3)
    icon: str = Field(default="", max_length=50)
    color: str = Field(default="", max_length=20)
    account_number: Optional[str] = Field(default=None, max_length=50)

    normalize_currency = field_validator("currency")(_upper_currency)


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[AccountType] = None
    balance: Optional[Amount] = Field(default=None, ge=0, max_digits=14, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    account_number: Optional[str] = Field(default=None, max_length=50)

    normalize_currency = field_validator("currency")(_upper_currency)


class AccountOut(ORMModel):
    id: int
    user_id: int
    name: str
    type: AccountType
    balance: float
    currency: str
    icon: str
    color: str
    account_number: Optional[str]
    created_at: datetime
    updated_at: datetime


class AccountBalanceOut(BaseModel):
    account_id: int
    balance: float
    currency: str


# -------------------------------------------------------- transactions


class TransactionIn(BaseModel):
    account_id: int
    category_id: Optional[int] = None
    saving_goal_id: Optional[int] = None
    type: TransactionType
    amount: Amount = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    date: date
    recurring: bool = False


class TransactionUpdate(BaseModel):
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    saving_goal_id: Optional[int] = None
    type: Optional[TransactionType] = None
    amount: Optional[Amount] = Field(default=None, gt=0, max_digits=14, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    date: Optional[dt.date] = None
    recurring: Optional[bool] = None


class TransferIn(BaseModel):
    account_id: int
    to_account_id: int
    amount: Amount = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    date: date


class TransactionOut(ORMModel):
    id: int
    user_id: int
    account_id: int
    category_id: Optional[int]
    saving_goal_id: Optional[int]
    type: TransactionType
    amount: float
    description: str
    date: date
    recurring: bool
    created_at: datetime
    updated_at: datetime


class TransactionStatsOut(ORMModel):
    period: str
    start: date
    end: date
    total_income: float
    total_expense: float
    net_amount: float
    count: int


class AccountDetailsOut(BaseModel):
    account: AccountOut
    transactions: list[TransactionOut]


# ------------------------------------------------------------- budgets


class BudgetIn(BaseModel):
    category_id: int
    name: str = Field(..., min_length=1, max_length=255)
    amount_planned: Amount = Field(..., gt=0, max_digits=14, decimal_places=2)
    period: BudgetPeriod = BudgetPeriod.monthly


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount_planned: Optional[Amount] = Field(
        default=None, gt=0, max_digits=14, decimal_places=2
    )
    amount_spent: Optional[Amount] = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )
    period: Optional[BudgetPeriod] = None


class BudgetOut(ORMModel):
    id: int
    user_id: int
    category_id: int
    name: str
    amount_planned: float
    amount_spent: float
    period: str
    created_at: datetime
    updated_at: datetime


class BudgetStatusOut(BudgetOut):
    status: Literal["good", "warning", "danger"]
    percentage_used: float
    remaining_amount: float
    days_remaining: int


class BudgetStatsOut(ORMModel):
    total_planned: float
    total_spent: float
    remaining: float
    budget_count: int
    over_budget_count: int
    utilization_rate: float


# -------------------------------------------------------- saving goals


class SavingGoalIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    target_amount: Amount = Field(..., gt=0, max_digits=14, decimal_places=2)
    account_id: Optional[int] = None
    deadline: Optional[date] = None
    frequency: Optional[GoalFrequency] = None


class SavingGoalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    target_amount: Optional[Amount] = Field(
        default=None, gt=0, max_digits=14, decimal_places=2
    )
    current_amount: Optional[Amount] = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )
    account_id: Optional[int] = None
    deadline: Optional[date] = None
    is_achieved: Optional[bool] = None
    frequency: Optional[GoalFrequency] = None


class ContributionIn(BaseModel):
    amount: Amount = Field(..., gt=0, max_digits=14, decimal_places=2)
    account_id: Optional[int] = None
    date: Optional[dt.date] = None


class SavingGoalOut(ORMModel):
    id: int
    user_id: int
    account_id: Optional[int]
    title: str
    target_amount: float
    current_amount: float
    deadline: Optional[date]
    is_achieved: bool
    frequency: Optional[GoalFrequency]
    created_at: datetime
    updated_at: datetime


class SavingGoalStatusOut(SavingGoalOut):
    progress_percentage: float
    remaining_amount: float
    days_to_deadline: Optional[int]


# ---------------------------------------------------------- categories


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    parent_id: Optional[int] = None
    icon: str = Field(default="", max_length=50)
    color: str = Field(default="", max_length=20)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[CategoryType] = None
    parent_id: Optional[int] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)


class CategoryOut(ORMModel):
    id: int
    user_id: int
    name: str
    type: CategoryType
    parent_id: Optional[int]
    icon: str
    color: str
    created_at: datetime


# --------------------------------------------------------------- tasks


class TaskIn(BaseModel):
    category_id: Optional[int] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=1000)
    priority: TaskPriority = TaskPriority.medium
    due_date: Optional[datetime] = None
    duration_planned: int = Field(default=0, ge=0, le=1440)
    recurrence_rule: Optional[str] = Field(default=None, max_length=255)


class TaskUpdate(BaseModel):
    category_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    duration_planned: Optional[int] = Field(default=None, ge=0, le=1440)
    duration_spent: Optional[int] = Field(default=None, ge=0, le=1440)
    status: Optional[TaskStatus] = None
    recurrence_rule: Optional[str] = Field(default=None, max_length=255)


class TaskOut(ORMModel):
    id: int
    user_id: int
    category_id: Optional[int]
    title: str
    description: str
    priority: TaskPriority
    due_date: Optional[datetime]
    duration_planned: int
    duration_spent: int
    status: TaskStatus
    recurrence_rule: Optional[str]
    created_at: datetime
    updated_at: datetime


class TaskStatsOut(ORMModel):
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    completion_rate: float


# --------------------------------------------------------- preferences


class IncomePreferences(BaseModel):
    sources: list[str] = Field(default_factory=list)
    monthly_total: float = Field(default=0, ge=0)
    accounts: list[str] = Field(default_factory=list)
    has_debt: bool = False
    debt_amount: float = Field(default=0, ge=0)


class ExpensePreferences(BaseModel):
    top_categories: list[str] = Field(default_factory=list)
    food: float = Field(default=0, ge=0)
    transport: float = Field(default=0, ge=0)
    housing: float = Field(default=0, ge=0)
    subscriptions: float = Field(default=0, ge=0)
    alerts_enabled: bool = False
    auto_budget: bool = False


class GoalPreferences(BaseModel):
    main_goal: str = ""
    secondary_goal: str = ""
    savings_target: float = Field(default=0, ge=0)
    deadline: str = ""
    advice_enabled: bool = False


class HabitPreferences(BaseModel):
    planning_time: str = ""
    daily_focus_time: str = ""
    custom_habit: str = ""
    summary_type: str = ""


class PreferencesIn(BaseModel):
    income: IncomePreferences
    expenses: ExpensePreferences
    goals: GoalPreferences
    habits: HabitPreferences


class PreferencesUpdate(BaseModel):
    income: Optional[IncomePreferences] = None
    expenses: Optional[ExpensePreferences] = None
    goals: Optional[GoalPreferences] = None
    habits: Optional[HabitPreferences] = None


class PreferencesOut(ORMModel):
    id: int
    user_id: int
    income: IncomePreferences
    expenses: ExpensePreferences
    goals: GoalPreferences
    habits: HabitPreferences
    created_at: datetime
    updated_at: datetime


# ----------------------------------------------------------- dashboard


class DebtOut(ORMModel):
    account_id: int
    account_name: str
    debt_amount: float
    currency: str


class DashboardSummaryOut(ORMModel):
    total_balance: float
    monthly_income: float
    monthly_expenses: float
    monthly_savings: float
    total_debts: float
    budgets_overspent: int
    saving_goals_achieved: int


class FinanceDashboardOut(ORMModel):
    accounts: list[AccountOut]
    current_month_transactions: list[TransactionOut]
    budgets_with_status: list[BudgetStatusOut]
    saving_goals: list[SavingGoalOut]
    debts: list[DebtOut]
    recurring_transactions: list[TransactionOut]
    summary: DashboardSummaryOut
