import os
import uuid
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

# Import app and DB dependency function first
from main import app, get_db

# Import database components needed for setup
from database import Base, make_engine
import auth
import logic
import models
import schemas

ROOT = Path(__file__).resolve().parent
TEST_DB_PATH = ROOT / "devhire-test.db"
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

test_engine = make_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def _remove_db_files():
    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{TEST_DB_PATH}{suffix}")
        if path.exists():
            try:
                os.unlink(path)
            except OSError as e:
                print(f"Error removing test database file {path}: {e}")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    _remove_db_files()

    # --- Create schema directly from models --- #
    Base.metadata.create_all(bind=test_engine)

    # --- Stamp the database with the latest Alembic revision --- #
    alembic_cfg = Config(str(ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    test_engine.dispose()
    _remove_db_files()


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Override the get_db dependency for tests
@pytest.fixture(scope="function")
def override_get_db():
    """Point the app's get_db dependency at the test database.

    Each API call gets its own session, as in production.
    """

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


# --- Actor / data helpers ---
def unique_email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def sign_up_actor(db, role: models.Role, prefix: str = "user") -> schemas.ActorSession:
    """Register a fresh account and return its session."""
    token = auth.sign_up(db, unique_email(prefix), "secret123", f"{prefix.title()} Person", role)
    return auth.current_user(db, token.access_token)


def job_payload(**overrides) -> schemas.JobCreate:
    fields = {
        "title": "Backend Engineer",
        "description": "Build APIs for a remote-first team.",
        "tech_stack": ["Go"],
        "experience_level": models.ExperienceLevel.MID,
        "salary_range": "$100k - $130k",
        "employment_type": models.EmploymentType.FULL_TIME,
        "timezone": "UTC",
    }
    fields.update(overrides)
    return schemas.JobCreate(**fields)


@pytest.fixture
def employer(db_session) -> schemas.ActorSession:
    return sign_up_actor(db_session, models.Role.EMPLOYER, "employer")


@pytest.fixture
def other_employer(db_session) -> schemas.ActorSession:
    return sign_up_actor(db_session, models.Role.EMPLOYER, "rival")


@pytest.fixture
def developer(db_session) -> schemas.ActorSession:
    return sign_up_actor(db_session, models.Role.DEVELOPER, "dev")


@pytest.fixture
def company(db_session, employer) -> schemas.Company:
    return logic.save_company(
        db_session, employer, schemas.CompanyCreate(company_name=f"Acme {uuid.uuid4().hex[:6]}")
    )


@pytest.fixture
def open_job(db_session, employer, company) -> schemas.JobWithCompany:
    return logic.create_job(db_session, employer, job_payload())
