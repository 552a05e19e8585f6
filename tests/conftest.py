"""Shared pytest fixtures.

- engine: fresh in-memory SQLite engine per test with all tables
- db_session: session bound to that engine
- client: TestClient with ``get_db`` overridden to the test session
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import edms.models  # noqa: F401,E402
from edms.db import Base, get_db  # noqa: E402
from tests.factories import make_document, make_user  # noqa: E402


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; take over transaction control so SAVEPOINTs nest
    @event.listens_for(eng, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    from edms.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db_session):
    return make_user(db_session, role="admin", department="BOD", name="Admin")


@pytest.fixture
def qc_author(db_session):
    return make_user(db_session, department="QC", name="QC Author")


@pytest.fixture
def qc_colleague(db_session):
    return make_user(db_session, department="QC", name="QC Colleague")


@pytest.fixture
def marketing_user(db_session):
    return make_user(db_session, department="MARKETING", name="Marketing User")


@pytest.fixture
def td_document(db_session, qc_author):
    return make_document(db_session, qc_author, doc_type="TD", department="QC")
