import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

TEST_DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@localhost/paydesk_test")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from paydesk import database
from paydesk.models.employee import Employee


def auth_headers(client, company_id: int, role: Optional[str] = None) -> dict:
    body = {"user_id": "test", "company_id": company_id}
    if role is not None:
        body["role"] = role
    resp = client.post("/auth/token", json=body)
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert "access_token" in data, f"token response missing access_token: {data}"
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {data['access_token']}"}


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _truncate_all_tables() -> None:
    with database.engine.begin() as conn:
        rows = conn.execute(
            text(
                """
                SELECT tablename
                FROM pg_tables
                WHERE schemaname = 'public'
                  AND tablename <> 'alembic_version'
                """
            )
        ).fetchall()

        table_names = [row[0] for row in rows]
        if table_names:
            quoted = ", ".join([f'"public"."{name}"' for name in table_names])
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))


@pytest.fixture(scope="session")
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    env = os.environ.copy()
    env["DATABASE_URL"] = TEST_DATABASE_URL

    subprocess.run(
        ["alembic", "upgrade", "head"],
        check=True,
        cwd=Path(__file__).resolve().parents[2],
        env=env,
    )

    database.configure_database()


@pytest.fixture
def clean_db(_prepare_test_database):
    """Request (directly or via pytestmark) in every test that touches Postgres."""
    _truncate_all_tables()
    yield
    _truncate_all_tables()


@pytest.fixture
def employee_factory(clean_db):
    def _make(
        *,
        company_id: int = 1,
        name: str = "Employee",
        start_date: Optional[date] = None,
        created_at: Optional[datetime] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Employee:
        db = database.SessionLocal()
        try:
            row = Employee(
                company_id=company_id,
                name=name,
                start_date=start_date,
                email=email,
                phone=phone,
                is_active=True,
            )
            if created_at is not None:
                row.created_at = created_at
            db.add(row)
            db.commit()
            db.refresh(row)
            return row
        finally:
            db.close()

    return _make
