"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool so all
sessions share one connection) wired into the app through
``dependency_overrides[get_db]``. Redis caching is disabled.
"""

import os

# Must be set before the settings object is created on first import
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthchain import models  # noqa: F401  registers every table
from healthchain.core.database import Base, get_db
from healthchain.core.security import create_access_token, encrypt_field, hash_identifier, hash_password
from healthchain.main import create_application
from healthchain.models.patient import Patient
from healthchain.models.user import User, UserRole


TEST_PASSWORD = "Str0ng!Pass"


# ============================================================================
# Database
# ============================================================================


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    TestingSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db):
    """TestClient without the lifespan (no Postgres, no table bootstrap)."""
    app = create_application()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


# ============================================================================
# Users and patients
# ============================================================================


def make_user(db, role: UserRole, username: str, **kwargs) -> User:
    user = User(
        email=f"{username}@hospital.example.com",
        username=username,
        password_hash=hash_password(TEST_PASSWORD),
        first_name=kwargs.pop("first_name", username.capitalize()),
        last_name=kwargs.pop("last_name", "Test"),
        role=role,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db.add(user)
    db.commit()
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def admin(db):
    return make_user(db, UserRole.ADMIN, "admin")


@pytest.fixture
def doctor(db):
    return make_user(db, UserRole.DOCTOR, "doctor")


@pytest.fixture
def nurse(db):
    return make_user(db, UserRole.NURSE, "nurse")


@pytest.fixture
def pharmacist(db):
    return make_user(db, UserRole.PHARMACIST, "pharmacist")


@pytest.fixture
def patient_user(db):
    return make_user(db, UserRole.PATIENT, "patientuser")


@pytest.fixture
def patient(db, patient_user):
    patient = Patient(
        hospital_number="HN2026000001",
        first_name="Somchai",
        last_name="Jaidee",
        national_id_encrypted=encrypt_field("1234567890123"),
        national_id_hash=hash_identifier("1234567890123"),
        phone="0812345678",
        user_id=patient_user.id,
    )
    db.add(patient)
    db.commit()
    return patient


@pytest.fixture
def other_patient(db):
    patient = Patient(hospital_number="HN2026000002", first_name="Malee", last_name="Suksan")
    db.add(patient)
    db.commit()
    return patient
