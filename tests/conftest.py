"""Shared fixtures.

Environment defaults must be set before ``app`` is imported, because the
module resolves its Settings at import time.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./credit-applications-test.db")
os.environ.setdefault("DB2_SCHEMA", "main")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any

import pytest
from fastapi.testclient import TestClient

import db
from app import app, get_store
from config import load_settings


def make_application(app_ref: str = "APP-0001", **overrides: Any) -> dict:
    payload = {
        "APP_REF": app_ref,
        "APP_STATUS": "PENDING",
        "APP_SUBMITTED_AT": "2024-03-01 09:15:00",
        "APP_PURPOSE": "Home improvement",
        "APP_CHANNEL": "BRANCH",
        "REQ_PRODUCT_CODE": "PL01",
        "REQ_PRODUCT_NAME": "Personal Loan",
        "REQ_PRODUCT_TYPE": "UNSECURED",
        "REQ_AMOUNT": 50000,
        "REQ_TERM_MONTHS": 36,
        "CIS_CUSTOMER_NUMBER": "CIS1001",
        "CUST_FIRST_NAME": "Thandi",
        "CUST_LAST_NAME": "Mokoena",
        "CUST_DOB": "1988-07-21",
        "CUST_EMAIL": "thandi.mokoena@example.com",
        "CUST_PHONE": "+27821234567",
        "GROSS_MONTHLY_INCOME": 32000.5,
        "SCORE_PROVIDER": "TransUnion",
        "SCORE_VALUE": 684,
        "ELIGIBLE_FLAG": "Y",
    }
    payload.update(overrides)
    return payload


class SpyStore:
    """Wraps a StoreConnector and records every statement sent to it."""

    def __init__(self, inner):
        self.inner = inner
        self.settings = inner.settings
        self.reads = []
        self.writes = []

    @property
    def calls(self) -> int:
        return len(self.reads) + len(self.writes)

    def execute(self, statement):
        self.reads.append(statement)
        return self.inner.execute(statement)

    def execute_write(self, statement):
        self.writes.append(statement)
        return self.inner.execute_write(statement)


@pytest.fixture
def settings(tmp_path):
    return load_settings(
        {
            "DATABASE_URL": f"sqlite:///{tmp_path / 'credit.db'}",
            "DB2_SCHEMA": "main",
            "ENVIRONMENT": "test",
        }
    )


@pytest.fixture
def db2_settings():
    return load_settings(
        {
            "DATABASE_URL": "db2+ibm_db://svc_credit:hunter2@db2.example.com:50001/BLUDB",
            "DB2_SCHEMA": "CREDIT",
        }
    )


@pytest.fixture
def store(settings):
    engine = db.create_store_engine(settings)
    db.init_db(engine, settings)
    yield db.StoreConnector(engine, settings)
    engine.dispose()


@pytest.fixture
def spy(store) -> SpyStore:
    return SpyStore(store)


@pytest.fixture
def client(store) -> TestClient:
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
