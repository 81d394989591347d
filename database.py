import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from settings import get_settings


def _build_database_url() -> str:
    """Determine the SQLAlchemy DB URL using settings/env vars with sensible fallbacks."""
    configured = get_settings().database_url
    if configured:
        return configured

    host = os.getenv("DB_HOST")
    if host:
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "")
        port = os.getenv("DB_PORT", "5432")
        name = os.getenv("DB_NAME", "devhire")
        return f"postgresql://{user}:{password}@{host}:{port}/{name}"

    # Default to local SQLite file for simple local development
    return "sqlite:///./devhire.db"


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def make_engine(url: str):
    # Extra connect args only relevant for SQLite
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    sqlite_engine = create_engine(
        url,
        connect_args={
            "check_same_thread": False,
            "timeout": 15,
        },
        pool_pre_ping=True,
    )

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA busy_timeout = 5000")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            # Needed for ON DELETE CASCADE between jobs and their applications/bookmarks
            cursor.execute("PRAGMA foreign_keys=ON;")
        finally:
            cursor.close()
        # Built-in lower() folds ASCII only; ilike compiles to lower(x) LIKE lower(y)
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)

    return sqlite_engine


SQLALCHEMY_DATABASE_URL = _build_database_url()

engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def create_db_and_tables():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
