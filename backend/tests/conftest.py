import os
import tempfile
from datetime import timedelta

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="udise_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'udise_test.db')}"
os.environ["TOKEN_CLEANUP_INTERVAL_SECONDS"] = "0"
os.environ["SUPER_ADMIN_EMAILS"] = "root.admin@example.org"
os.environ.setdefault("SCHOOL_TABLE_NAME", "udise_data")


@pytest.fixture(scope="session")
def app():
    from main import app as fastapi_app
    return fastapi_app


@pytest.fixture(scope="session")
def engine():
    from db.session import engine as db_engine
    return db_engine


@pytest.fixture(autouse=True)
def _reset_db(app, engine):
    from sqlalchemy import text
    from db.base import Base
    from services.school_schema import SCHOOL_TABLE_NAME

    Base.metadata.create_all(bind=engine)
    yield
    with engine.begin() as conn:
        conn.execute(text(f'DROP TABLE IF EXISTS "{SCHOOL_TABLE_NAME}"'))
        conn.execute(text("DELETE FROM auth_tokens"))
        conn.execute(text("DELETE FROM users"))
    engine.dispose()


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db_session():
    from db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def make_token(db_session):
    from authentication.repository import create_auth_token, create_user
    from authentication.security import generate_token, token_expiry

    def _make(email: str, role: str = "user", status: str = "active", expires_in=None):
        user = create_user(
            db_session,
            email=email,
            google_id=f"g-{email}",
            name=email.split("@")[0],
            profile_picture=None,
            role=role,
            status=status,
        )
        user_id = user.user_id
        token = generate_token()
        expires_at = token_expiry(expires_in if expires_in is not None else timedelta(hours=1))
        create_auth_token(db_session, user_id=user_id, token=token, expires_at=expires_at)
        db_session.commit()
        return token, user_id

    return _make


@pytest.fixture()
def user_token(make_token):
    token, _ = make_token("plain.user@example.org", role="user")
    return token


@pytest.fixture()
def admin_token(make_token):
    token, _ = make_token("admin.user@example.org", role="admin")
    return token


@pytest.fixture()
def super_admin_token(make_token):
    token, _ = make_token("super.user@example.org", role="super_admin")
    return token


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
