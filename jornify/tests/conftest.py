import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
import sys
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

_default_sqlite_path = Path(tempfile.gettempdir()) / "jornify_test.sqlite3"
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_default_sqlite_path}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from jornify import database
from jornify.models import Employee


def _get_access_token(client, company_id: int, user_id: str = "test", role: str = "company") -> str:
    resp = client.post("/auth/token", json={"user_id": user_id, "company_id": company_id, "role": role})
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert isinstance(data, dict), f"token response not a JSON object: {data}"
    assert "access_token" in data, f"token response missing access_token: {data}"
    return data["access_token"]


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if url.drivername.startswith("sqlite"):
        if url.database and os.path.exists(url.database):
            os.remove(url.database)
        return

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


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    env = os.environ.copy()
    env["DATABASE_URL"] = TEST_DATABASE_URL

    subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        check=True,
        cwd=Path(__file__).resolve().parents[2],
        env=env,
    )

    database.configure_database()


def _clear_tables() -> None:
    with database.engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            names = [t.name for t in database.Base.metadata.sorted_tables]
            quoted = ", ".join([f'"public"."{name}"' for name in names])
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))
            return

        for table in reversed(database.Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def _truncate_tables_between_tests():
    _clear_tables()
    yield
    _clear_tables()


@pytest.fixture
def employee_factory():
    def _create(company_id: int, name: str = "Alice", contracted_hours_per_week: int = 40) -> Employee:
        db = database.SessionLocal()
        try:
            row = Employee(
                id=str(uuid4()),
                company_id=company_id,
                name=name,
                contracted_hours_per_week=contracted_hours_per_week,
                is_active=True,
            )
            db.add(row)
            db.commit()
            return row
        finally:
            db.close()

    return _create
