from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from main import app, get_db


def _engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def _client(engine=None) -> TestClient:
    engine = engine or _engine()
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _register(client: TestClient, email: str) -> dict:
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "correct-horse", "name": "Ada"},
    )
    assert resp.status_code == 201
    return resp.json()["data"]


def _auth(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_register_me_and_dashboard() -> None:
    client = _client()
    tokens = _register(client, "ada@example.com")

    me = client.get("/api/v1/auth/me", headers=_auth(tokens))
    assert me.status_code == 200
    assert me.json()["data"]["has_preferences"] is False

    resp = client.get("/api/v1/finance/dashboard", headers=_auth(tokens))
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert len(body["data"]["accounts"]) == 4
    assert body["data"]["debts"] == []
    assert body["data"]["summary"]["total_balance"] == 0
    assert "timestamp" in body


def test_reconcile_over_http() -> None:
    client = _client()
    headers = _auth(_register(client, "ada@example.com"))

    account = client.post(
        "/api/v1/accounts",
        json={"name": "Main", "type": "checking", "currency": "xaf", "balance": 10},
        headers=headers,
    ).json()["data"]
    assert account["currency"] == "XAF"

    for type, amount in [("income", 2000), ("expense", 500)]:
        resp = client.post(
            "/api/v1/transactions",
            json={
                "account_id": account["id"],
                "type": type,
                "amount": amount,
                "description": type,
                "date": "2024-06-10",
            },
            headers=headers,
        )
        assert resp.status_code == 201

    resp = client.post(f"/api/v1/accounts/{account['id']}/reconcile", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["balance"] == 1500.0

    balance = client.get(f"/api/v1/accounts/{account['id']}/balance", headers=headers)
    assert balance.json()["data"] == {
        "account_id": account["id"],
        "balance": 1500.0,
        "currency": "XAF",
    }


def test_error_envelopes() -> None:
    client = _client()
    owner = _auth(_register(client, "ada@example.com"))
    intruder = _auth(_register(client, "eve@example.com"))

    missing = client.get("/api/v1/accounts/9999", headers=owner)
    assert missing.status_code == 404
    assert missing.json()["success"] is False
    assert missing.json()["code"] == "NOT_FOUND"
    assert missing.json()["error"] == "Account not found"

    account_id = client.get("/api/v1/accounts", headers=owner).json()["data"]["items"][0]["id"]
    foreign = client.get(f"/api/v1/accounts/{account_id}", headers=intruder)
    assert foreign.status_code == 403
    assert foreign.json()["code"] == "FORBIDDEN"

    invalid = client.post(
        "/api/v1/accounts",
        json={"name": "", "type": "cash", "currency": "XAF"},
        headers=owner,
    )
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "VALIDATION_ERROR"
    assert invalid.json()["errors"][0]["field"] == "name"

    anonymous = client.get("/api/v1/finance/dashboard")
    assert anonymous.status_code == 401
    assert anonymous.json()["code"] == "UNAUTHORIZED"

    bad_login = client.post(
        "/api/v1/auth/login",
        json={"email": "ada@example.com", "password": "wrong-password"},
    )
    assert bad_login.status_code == 401

    duplicate = client.post(
        "/api/v1/auth/register",
        json={"email": "ada@example.com", "password": "correct-horse", "name": "Ada"},
    )
    assert duplicate.status_code == 409


def test_balance_read_does_not_reconcile() -> None:
    client = _client()
    headers = _auth(_register(client, "ada@example.com"))

    account = client.post(
        "/api/v1/accounts",
        json={"name": "Main", "type": "checking", "currency": "XAF", "balance": 10},
        headers=headers,
    ).json()["data"]
    client.post(
        "/api/v1/transactions",
        json={
            "account_id": account["id"],
            "type": "income",
            "amount": 90,
            "description": "salary",
            "date": "2024-06-10",
        },
        headers=headers,
    )

    for _ in range(2):
        resp = client.get(f"/api/v1/accounts/{account['id']}/balance", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["balance"] == 10.0

    client.post(f"/api/v1/accounts/{account['id']}/reconcile", headers=headers)
    resp = client.get(f"/api/v1/accounts/{account['id']}/balance", headers=headers)
    assert resp.json()["data"]["balance"] == 90.0


def test_store_failure_returns_internal_error() -> None:
    engine = _engine()
    client = _client(engine)
    headers = _auth(_register(client, "ada@example.com"))

    with engine.begin() as conn:
        conn.execute(text("DROP TABLE budgets"))

    resp = client.get("/api/v1/finance/dashboard", headers=headers)
    body = resp.json()
    assert resp.status_code == 500
    assert body["success"] is False
    assert body["code"] == "INTERNAL_ERROR"
    assert body["error"] == "build dashboard failed"
