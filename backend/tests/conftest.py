from __future__ import annotations

"""
Shared pytest configuration.

This file ensures the backend directory is on sys.path so that `import app`
works consistently in all tests, and provides reusable fixtures for tests.
"""

import os
import sys
from pathlib import Path

# Must be set before app.settings is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.deps import get_credential_provider, get_workflow_client
from app.routes import create_app
from tests.utils import (
    FakeCredentialProvider,
    FakeRemoteClient,
    RecordingNotifier,
    install_inmemory_db,
    make_session_factory,
)


@pytest.fixture()
def session_factory() -> sessionmaker[Session]:
    return make_session_factory()


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture()
def credentials() -> FakeCredentialProvider:
    return FakeCredentialProvider()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def app_with_inmemory_db(remote, credentials) -> tuple[FastAPI, sessionmaker[Session]]:
    fastapi_app = create_app()
    SessionLocal: sessionmaker[Session] = install_inmemory_db(fastapi_app)
    fastapi_app.dependency_overrides[get_workflow_client] = lambda: remote
    fastapi_app.dependency_overrides[get_credential_provider] = lambda: credentials
    try:
        yield fastapi_app, SessionLocal
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db_session(app_with_inmemory_db):
    _, SessionLocal = app_with_inmemory_db
    with SessionLocal() as session:
        yield session
