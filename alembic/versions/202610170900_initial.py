"""initial finance schema

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _owner():
    return sa.Column(
        "user_id",
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("expense", "revenue", "task", name="categorytype"),
            nullable=False,
        ),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("icon", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_categories_user_type", "categories", ["user_id", "type"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking",
                "savings",
                "mobile_money",
                "cash",
                "bank",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column(
            "balance", sa.Numeric(14, 2), nullable=False, server_default="0"
        ),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("account_number", sa.String(length=50)),
        *_timestamps(),
    )
    op.create_index("ix_accounts_user", "accounts", ["user_id"])

    op.create_table(
        "saving_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("target_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "current_amount", sa.Numeric(14, 2), nullable=False, server_default="0"
        ),
        sa.Column("deadline", sa.Date()),
        sa.Column(
            "is_achieved", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "frequency",
            sa.Enum("weekly", "monthly", "yearly", name="goalfrequency"),
        ),
        *_timestamps(),
        sa.CheckConstraint("target_amount > 0", name="ck_saving_goal_target_positive"),
        sa.CheckConstraint(
            "current_amount >= 0", name="ck_saving_goal_current_positive"
        ),
    )
    op.create_index(
        "ix_saving_goals_user_account", "saving_goals", ["user_id", "account_id"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
        ),
        sa.Column(
            "saving_goal_id",
            sa.Integer(),
            sa.ForeignKey("saving_goals.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "type",
            sa.Enum("income", "expense", "saving", name="transactiontype"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "description", sa.String(length=255), nullable=False, server_default=""
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_account", "transactions", ["user_id", "account_id"]
    )
    op.create_index(
        "ix_transactions_user_goal", "transactions", ["user_id", "saving_goal_id"]
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("amount_planned", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "amount_spent", sa.Numeric(14, 2), nullable=False, server_default="0"
        ),
        sa.Column(
            "period", sa.String(length=20), nullable=False, server_default="monthly"
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_planned > 0", name="ck_budget_planned_positive"),
    )
    op.create_index("ix_budgets_user", "budgets", ["user_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", name="taskpriority"),
            nullable=False,
            server_default="medium",
        ),
        sa.Column("due_date", sa.DateTime()),
        sa.Column(
            "duration_planned", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("duration_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("pending", "running", "completed", "expired", name="taskstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("recurrence_rule", sa.String(length=255)),
        *_timestamps(),
    )
    op.create_index("ix_tasks_user_status", "tasks", ["user_id", "status"])

    op.create_table(
        "preferences",
        sa.Column("id", sa.Integer(), primary_key=True),
        _owner(),
        sa.Column("income", sa.JSON(), nullable=False),
        sa.Column("expenses", sa.JSON(), nullable=False),
        sa.Column("goals", sa.JSON(), nullable=False),
        sa.Column("habits", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_preferences_user"),
    )


def downgrade():
    op.drop_table("preferences")
    op.drop_index("ix_tasks_user_status", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_budgets_user", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_user_goal", table_name="transactions")
    op.drop_index("ix_transactions_user_account", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_saving_goals_user_account", table_name="saving_goals")
    op.drop_table("saving_goals")
    op.drop_index("ix_accounts_user", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_categories_user_type", table_name="categories")
    op.drop_table("categories")
    op.drop_table("users")
