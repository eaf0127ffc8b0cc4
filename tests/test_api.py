from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import issue_token
from database import Base, get_db
from main import app
from models import User, UserRole


def make_client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), SessionLocal


def add_user(SessionLocal, email: str, role: UserRole = UserRole.user) -> int:
    with SessionLocal() as session:
        user = User(first_name="Api", last_name="User", email=email, role=role)
        session.add(user)
        session.commit()
        return user.id


def auth_headers(user_id: int, role: UserRole = UserRole.user) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id, role)}"}


def test_requests_without_token_are_rejected() -> None:
    client, _ = make_client()
    assert client.get("/incomes").status_code == 401
    bad = client.get("/incomes", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    assert client.get("/health").json() == {"status": "ok"}


def test_expired_token_is_rejected() -> None:
    client, SessionLocal = make_client()
    user_id = add_user(SessionLocal, "a@example.com")
    token = issue_token(user_id, max_age_hours=-1)
    response = client.get("/dashboard", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"


def test_income_crud_roundtrip() -> None:
    client, SessionLocal = make_client()
    headers = auth_headers(add_user(SessionLocal, "a@example.com"))

    created = client.post(
        "/incomes",
        json={"title": "Salary", "amount": "2500", "date": "2025-03-01"},
        headers=headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["amount"] == "2500.00"
    income_id = body["id"]

    listing = client.get("/incomes?month=3&year=2025", headers=headers).json()
    assert [i["id"] for i in listing["incomes"]] == [income_id]
    assert listing["total"] == "2500.00"

    updated = client.put(
        f"/incomes/{income_id}",
        json={"title": "Salary", "amount": "2600.10", "date": "2025-03-01"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["amount"] == "2600.10"

    assert client.delete(f"/incomes/{income_id}", headers=headers).status_code == 204
    assert client.get(f"/incomes/{income_id}", headers=headers).status_code == 404


def test_validation_errors_use_field_list() -> None:
    client, SessionLocal = make_client()
    headers = auth_headers(add_user(SessionLocal, "a@example.com"))

    response = client.post(
        "/expenses",
        json={
            "title": "",
            "amount": "0",
            "date": "2025-03-01",
            "category": "Food & Dining",
        },
        headers=headers,
    )
    assert response.status_code == 422
    fields = {e["field"] for e in response.json()["errors"]}
    assert fields == {"title", "amount"}

    future = client.post(
        "/incomes",
        json={"title": "Later", "amount": "10", "date": "2999-01-01"},
        headers=headers,
    )
    assert future.status_code == 422
    assert future.json()["errors"] == [
        {"field": "date", "message": "Date cannot be in the future"}
    ]


def test_expense_category_is_fuzzy_matched() -> None:
    client, SessionLocal = make_client()
    headers = auth_headers(add_user(SessionLocal, "a@example.com"))

    created = client.post(
        "/expenses",
        json={
            "title": "Flight",
            "amount": "320.00",
            "date": "2025-03-04",
            "category": "Travl",
        },
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["category"] == "Travel"

    listing = client.get(
        "/expenses?month=3&year=2025&category=travel", headers=headers
    ).json()
    assert listing["category"] == "Travel"
    assert len(listing["expenses"]) == 1


def test_duplicate_budget_returns_conflict() -> None:
    client, SessionLocal = make_client()
    headers = auth_headers(add_user(SessionLocal, "a@example.com"))
    payload = {
        "category": "Shopping",
        "planned_amount": "150",
        "month": 1,
        "year": 2025,
    }

    first = client.post("/budgets", json=payload, headers=headers)
    assert first.status_code == 201
    second = client.post("/budgets", json=payload, headers=headers)
    assert second.status_code == 409
    assert second.json()["errors"][0]["field"] == "category"

    detail = client.get(f"/budgets/{first.json()['id']}", headers=headers).json()
    assert detail["status"]["spent_cents"] == 0
    assert detail["budget"]["planned_amount"] == "150.00"


def test_other_users_records_are_not_found() -> None:
    client, SessionLocal = make_client()
    owner = auth_headers(add_user(SessionLocal, "owner@example.com"))
    intruder = auth_headers(add_user(SessionLocal, "intruder@example.com"))

    created = client.post(
        "/expenses",
        json={
            "title": "Rent",
            "amount": "900",
            "date": "2025-03-01",
            "category": "Home & Rent",
        },
        headers=owner,
    ).json()

    response = client.put(
        f"/expenses/{created['id']}",
        json={
            "title": "Rent",
            "amount": "1",
            "date": "2025-03-01",
            "category": "Home & Rent",
        },
        headers=intruder,
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Expense not found"


def test_admin_routes_require_admin_role() -> None:
    client, SessionLocal = make_client()
    user_id = add_user(SessionLocal, "a@example.com")
    admin_id = add_user(SessionLocal, "root@example.com", UserRole.admin)

    assert client.get("/admin/users", headers=auth_headers(user_id)).status_code == 403

    admin = auth_headers(admin_id, UserRole.admin)
    listing = client.get("/admin/users", headers=admin).json()
    assert [u["id"] for u in listing["users"]] == [user_id]

    toggled = client.post(f"/admin/users/{user_id}/toggle-status", headers=admin)
    assert toggled.status_code == 200
    assert toggled.json()["is_active"] is False


def test_report_json_views() -> None:
    client, SessionLocal = make_client()
    headers = auth_headers(add_user(SessionLocal, "a@example.com"))
    client.post(
        "/incomes",
        json={"title": "Salary", "amount": "1000", "date": "2025-03-01"},
        headers=headers,
    )

    monthly = client.get("/reports/monthly?month=3&year=2025", headers=headers).json()
    assert monthly["title"] == "Monthly Financial Report"
    assert monthly["summary"]["total_income_cents"] == 100_000

    yearly = client.get("/reports/yearly?year=2025", headers=headers).json()
    assert len(yearly["months"]) == 12
    assert yearly["period"] == "Year 2025"


def test_admin_user_status_filter_is_restricted() -> None:
    client, SessionLocal = make_client()
    add_user(SessionLocal, "a@example.com")
    admin = auth_headers(
        add_user(SessionLocal, "root@example.com", UserRole.admin), UserRole.admin
    )

    response = client.get("/admin/users?status=bogus", headers=admin)
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "status"

    active = client.get("/admin/users?status=active", headers=admin).json()
    assert len(active["users"]) == 1
