import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import SessionLocal
from errors import ERROR_MESSAGES, HTTP_STATUS, ErrorKind, ServiceError
from models import CategoryType, TaskStatus, TransactionType
from schemas import (
    AccountBalanceOut,
    AccountDetailsOut,
    AccountIn,
    AccountOut,
    AccountUpdate,
    BudgetIn,
    BudgetOut,
    BudgetStatsOut,
    BudgetStatusOut,
    BudgetUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    ContributionIn,
    FinanceDashboardOut,
    LoginIn,
    PreferencesIn,
    PreferencesOut,
    PreferencesUpdate,
    ProfileOut,
    RefreshIn,
    RegisterIn,
    SavingGoalIn,
    SavingGoalOut,
    SavingGoalStatusOut,
    SavingGoalUpdate,
    TaskIn,
    TaskOut,
    TaskStatsOut,
    TaskUpdate,
    TokenPair,
    TransactionIn,
    TransactionOut,
    TransactionStatsOut,
    TransactionUpdate,
    TransferIn,
    UserOut,
)
from security import decode_token
from services import (
    AccountService,
    AuthService,
    BudgetService,
    CategoryService,
    DashboardService,
    PreferencesService,
    SavingGoalService,
    TaskService,
    TransactionFilters,
    TransactionService,
)

APP_VERSION = "0.1.0"

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance API", version=APP_VERSION)
api = APIRouter(prefix="/api/v1")
bearer = HTTPBearer(auto_error=False)

STATUS_KINDS = {status: kind for kind, status in HTTP_STATUS.items()}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> int:
    if credentials is None:
        raise ServiceError(ErrorKind.unauthorized, "Missing bearer token")
    payload = decode_token(credentials.credentials, expected_type="access")
    return payload["user_id"]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def ok(data: object = None, message: str = "OK", status_code: int = 200) -> JSONResponse:
    body = {
        "success": True,
        "message": message,
        "data": jsonable_encoder(data),
        "timestamp": _timestamp(),
    }
    return JSONResponse(status_code=status_code, content=body)


def error_response(
    kind: ErrorKind, detail: str, extra: Optional[dict[str, object]] = None
) -> JSONResponse:
    body: dict[str, object] = {
        "success": False,
        "message": ERROR_MESSAGES[kind],
        "error": detail,
        "code": kind.value,
        "timestamp": _timestamp(),
    }
    if extra:
        body.update(extra)
    return JSONResponse(status_code=HTTP_STATUS[kind], content=body)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.kind == ErrorKind.internal:
        logger.error(f"request_failed: path={request.url.path} detail={exc.detail}")
    return error_response(exc.kind, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [
            str(part)
            for part in err.get("loc", ())
            if part not in ("body", "query", "path")
        ]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return error_response(
        ErrorKind.validation, "Request validation failed", {"errors": errors}
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"store_error: path={request.url.path}")
    return error_response(ErrorKind.internal, "Database operation failed")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = STATUS_KINDS.get(exc.status_code)
    if kind is None:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    return error_response(kind, str(exc.detail))


def _token_pair(tokens: dict[str, object]) -> TokenPair:
    return TokenPair(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        token_type=tokens["token_type"],
        user=UserOut.model_validate(tokens["user"]),
    )


@app.get("/health")
def health():
    return ok({"status": "ok", "version": APP_VERSION})


# ---------------------------------------------------------------- auth


@api.post("/auth/register")
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    tokens = AuthService(db).register(payload)
    return ok(_token_pair(tokens), "User registered", status_code=201)


@api.post("/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    return ok(_token_pair(AuthService(db).login(payload)), "Logged in")


@api.post("/auth/refresh")
def refresh(payload: RefreshIn, db: Session = Depends(get_db)):
    return ok(_token_pair(AuthService(db).refresh(payload.refresh_token)), "Token refreshed")


@api.get("/auth/me")
def me(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return ok(ProfileOut.model_validate(AuthService(db).profile(user_id)))


# ------------------------------------------------------------ accounts


@api.post("/accounts")
def create_account(
    payload: AccountIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    account = AccountService(db, user_id).create(payload)
    return ok(AccountOut.model_validate(account), "Account created", status_code=201)


@api.get("/accounts")
def list_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    accounts, total = AccountService(db, user_id).paginate(page, limit)
    return ok(
        {
            "items": [AccountOut.model_validate(a) for a in accounts],
            "total": total,
            "page": page,
            "limit": limit,
        }
    )


@api.get("/accounts/{account_id}")
def get_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok(AccountOut.model_validate(AccountService(db, user_id).get(account_id)))


@api.put("/accounts/{account_id}")
def update_account(
    account_id: int,
    payload: AccountUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    account = AccountService(db, user_id).update(account_id, payload)
    return ok(AccountOut.model_validate(account), "Account updated")


@api.delete("/accounts/{account_id}")
def delete_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    AccountService(db, user_id).delete(account_id)
    return ok(None, "Account deleted")


@api.get("/accounts/{account_id}/balance")
def account_balance(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    account = AccountService(db, user_id).get(account_id)
    return ok(
        AccountBalanceOut(
            account_id=account.id, balance=account.balance, currency=account.currency
        )
    )


@api.post("/accounts/{account_id}/reconcile")
def reconcile_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    account = AccountService(db, user_id).reconcile_balance(account_id)
    return ok(AccountOut.model_validate(account), "Balance reconciled")


@api.get("/accounts/{account_id}/details")
def account_details(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    details = AccountService(db, user_id).details(account_id)
    return ok(
        AccountDetailsOut(
            account=AccountOut.model_validate(details["account"]),
            transactions=[TransactionOut.model_validate(t) for t in details["transactions"]],
        )
    )


# -------------------------------------------------------- transactions


@api.post("/transactions")
def create_transaction(
    payload: TransactionIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).create(payload)
    return ok(TransactionOut.model_validate(txn), "Transaction created", status_code=201)


@api.get("/transactions")
def list_transactions(
    account_id: Optional[int] = None,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        account_id=account_id,
        category_id=category_id,
        type=type,
        start=start_date,
        end=end_date,
    )
    items, total = TransactionService(db, user_id).search(
        filters, limit=limit, offset=(page - 1) * limit
    )
    return ok(
        {
            "items": [TransactionOut.model_validate(t) for t in items],
            "total": total,
            "page": page,
            "limit": limit,
        }
    )


@api.get("/transactions/stats")
def transaction_stats(
    period: Optional[str] = Query(None, pattern="^(week|month|year)$"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    stats = TransactionService(db, user_id).stats(period)
    return ok(TransactionStatsOut.model_validate(stats))


@api.post("/transactions/transfer")
def create_transfer(
    payload: TransferIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    debit, credit = TransactionService(db, user_id).transfer(payload)
    return ok(
        [TransactionOut.model_validate(debit), TransactionOut.model_validate(credit)],
        "Transfer created",
        status_code=201,
    )


@api.get("/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).get(transaction_id)
    return ok(TransactionOut.model_validate(txn))


@api.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).update(transaction_id, payload)
    return ok(TransactionOut.model_validate(txn), "Transaction updated")


@api.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    TransactionService(db, user_id).delete(transaction_id)
    return ok(None, "Transaction deleted")


# ------------------------------------------------------------- budgets


@api.post("/budgets")
def create_budget(
    payload: BudgetIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user_id).create(payload)
    return ok(BudgetOut.model_validate(budget), "Budget created", status_code=201)


@api.get("/budgets")
def list_budgets(
    category_id: Optional[int] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budgets = BudgetService(db, user_id).list_all(category_id)
    return ok([BudgetOut.model_validate(b) for b in budgets])


@api.get("/budgets/with-status")
def budgets_with_status(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    views = BudgetService(db, user_id).with_status()
    return ok([BudgetStatusOut.model_validate(v) for v in views])


@api.get("/budgets/stats")
def budget_stats(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return ok(BudgetStatsOut.model_validate(BudgetService(db, user_id).stats()))


@api.get("/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok(BudgetOut.model_validate(BudgetService(db, user_id).get(budget_id)))


@api.put("/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user_id).update(budget_id, payload)
    return ok(BudgetOut.model_validate(budget), "Budget updated")


@api.delete("/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    BudgetService(db, user_id).delete(budget_id)
    return ok(None, "Budget deleted")


# -------------------------------------------------------- saving goals


@api.post("/saving-goals")
def create_saving_goal(
    payload: SavingGoalIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    goal = SavingGoalService(db, user_id).create(payload)
    return ok(SavingGoalOut.model_validate(goal), "Saving goal created", status_code=201)


@api.get("/saving-goals")
def list_saving_goals(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    goals = SavingGoalService(db, user_id).list_all()
    return ok([SavingGoalOut.model_validate(g) for g in goals])


@api.get("/saving-goals/with-status")
def saving_goals_with_status(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    views = SavingGoalService(db, user_id).with_status()
    return ok([SavingGoalStatusOut.model_validate(v) for v in views])


@api.get("/saving-goals/{goal_id}")
def get_saving_goal(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok(SavingGoalOut.model_validate(SavingGoalService(db, user_id).get(goal_id)))


@api.put("/saving-goals/{goal_id}")
def update_saving_goal(
    goal_id: int,
    payload: SavingGoalUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    goal = SavingGoalService(db, user_id).update(goal_id, payload)
    return ok(SavingGoalOut.model_validate(goal), "Saving goal updated")


@api.delete("/saving-goals/{goal_id}")
def delete_saving_goal(
    goal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    SavingGoalService(db, user_id).delete(goal_id)
    return ok(None, "Saving goal deleted")


@api.post("/saving-goals/{goal_id}/contributions")
def add_contribution(
    goal_id: int,
    payload: ContributionIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    goal = SavingGoalService(db, user_id).contribute(goal_id, payload)
    return ok(SavingGoalOut.model_validate(goal), "Contribution added", status_code=201)


# ---------------------------------------------------------- categories


@api.get("/categories")
def list_categories(
    type: Optional[CategoryType] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, user_id).list_all(type)
    return ok([CategoryOut.model_validate(c) for c in categories])


@api.post("/categories")
def create_category(
    payload: CategoryIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user_id).create(payload)
    return ok(CategoryOut.model_validate(category), "Category created", status_code=201)


@api.get("/categories/{category_id}")
def get_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok(CategoryOut.model_validate(CategoryService(db, user_id).get(category_id)))


@api.put("/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user_id).update(category_id, payload)
    return ok(CategoryOut.model_validate(category), "Category updated")


@api.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    CategoryService(db, user_id).delete(category_id)
    return ok(None, "Category deleted")


# --------------------------------------------------------------- tasks


@api.post("/tasks")
def create_task(
    payload: TaskIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    task = TaskService(db, user_id).create(payload)
    return ok(TaskOut.model_validate(task), "Task created", status_code=201)


@api.get("/tasks")
def list_tasks(
    status: Optional[TaskStatus] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    tasks = TaskService(db, user_id).list_all(status)
    return ok([TaskOut.model_validate(t) for t in tasks])


@api.get("/tasks/stats")
def task_stats(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return ok(TaskStatsOut.model_validate(TaskService(db, user_id).stats()))


@api.get("/tasks/{task_id}")
def get_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok(TaskOut.model_validate(TaskService(db, user_id).get(task_id)))


@api.put("/tasks/{task_id}")
def update_task(
    task_id: int,
    payload: TaskUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    task = TaskService(db, user_id).update(task_id, payload)
    return ok(TaskOut.model_validate(task), "Task updated")


@api.post("/tasks/{task_id}/complete")
def complete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    task = TaskService(db, user_id).complete(task_id)
    return ok(TaskOut.model_validate(task), "Task completed")


@api.delete("/tasks/{task_id}")
def delete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    TaskService(db, user_id).delete(task_id)
    return ok(None, "Task deleted")


# --------------------------------------------------------- preferences


@api.post("/preferences")
def create_preferences(
    payload: PreferencesIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    prefs = PreferencesService(db, user_id).create(payload)
    return ok(PreferencesOut.model_validate(prefs), "Preferences saved", status_code=201)


@api.get("/preferences")
def get_preferences(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    return ok(PreferencesOut.model_validate(PreferencesService(db, user_id).get()))


@api.put("/preferences")
def update_preferences(
    payload: PreferencesUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    prefs = PreferencesService(db, user_id).update(payload)
    return ok(PreferencesOut.model_validate(prefs), "Preferences updated")


@api.delete("/preferences")
def delete_preferences(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    PreferencesService(db, user_id).delete()
    return ok(None, "Preferences deleted")


# ----------------------------------------------------------- dashboard


@api.get("/finance/dashboard")
def finance_dashboard(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    dashboard = DashboardService(db, user_id).build()
    return ok(FinanceDashboardOut.model_validate(dashboard))


app.include_router(api)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
