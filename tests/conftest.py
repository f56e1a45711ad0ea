"""
Test fixtures and shared setup.

Runs against an in-memory SQLite database. Tables are created before and
dropped after every test that asks for ``db``, so each test starts empty.
"""

import os
import pytest

# ── Override settings BEFORE importing app modules ────────────────────────────
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("FHIR_SUBMIT_URL", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from ayush_terminology.main import app
from ayush_terminology.database import Base, SessionLocal, engine, get_db
from ayush_terminology.codesystems import CodeSystem
from ayush_terminology.identity import DEMO_USERS, issue_token
from ayush_terminology.ingestion_logic import build_concept_map, ingest_csv_file
from ayush_terminology.seed_data import NAMASTE_TO_ICD11_TM2

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")


@pytest.fixture
def db() -> Session:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_db(db: Session) -> Session:
    """NAMASTE and ICD-11 TM2 sample files plus the curated TM2 concept map."""
    ingest_csv_file(db, os.path.join(DATA_DIR, "namaste_code.csv"), CodeSystem.NAMASTE)
    ingest_csv_file(db, os.path.join(DATA_DIR, "icd11_TM_2.csv"), CodeSystem.ICD11)
    build_concept_map(db, NAMASTE_TO_ICD11_TM2)
    return db


@pytest.fixture
def client(db: Session) -> TestClient:
    """
    FastAPI test client with DB dependency overridden to use the test session.
    """

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_client(seeded_db: Session, client: TestClient) -> TestClient:
    return client


@pytest.fixture
def clinician():
    return DEMO_USERS[1]


@pytest.fixture
def auth_headers(clinician) -> dict:
    token = issue_token(clinician)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def viewer_headers() -> dict:
    token = issue_token(DEMO_USERS[2])["access_token"]
    return {"Authorization": f"Bearer {token}"}
