"""Database connection and session management for recurtask.

This module supports both:
- Local SQLite (default for dev)
- PostgreSQL via `DATABASE_URL`
"""

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from dotenv import load_dotenv

load_dotenv()

# Database URL - SQLite by default (local dev)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./recurtask.db")

def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # SQLite-specific setting required for FastAPI concurrency in a single process.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# Create engine (module-level singleton)
engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable foreign keys and WAL on SQLite connections."""
    if _is_sqlite_url(DATABASE_URL):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def _sqlite_table_columns(dbapi_conn, table_name: str) -> list:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(f"PRAGMA table_info({table_name})")
        return [row[1] for row in cursor.fetchall()]  # row[1] is column name
    finally:
        cursor.close()


# Columns added after the first release of each table, with their SQLite DDL.
_LEGACY_COLUMNS = {
    "tasks": [
        ("recurrence_version", "INTEGER NOT NULL DEFAULT 1"),
        ("last_recurrence_update", "DATETIME"),
        ("occurrence_start", "DATETIME"),
    ],
    "recurrence_patterns": [
        ("instance_duration", "JSON"),
        ("timezone", "VARCHAR NOT NULL DEFAULT 'UTC'"),
        ("pattern_version", "INTEGER NOT NULL DEFAULT 1"),
        ("total_instances_created", "INTEGER NOT NULL DEFAULT 0"),
        ("last_instance_date", "DATETIME"),
    ],
}


def ensure_legacy_schema_compat(*, engine_override: Engine = None, database_url_override: str = None) -> None:
    """Patch SQLite files created before versioning/duration columns existed.

    `create_all()` does not alter existing tables, so missing columns are added
    in place with their defaults. Data backfill is done by
    `migrations/migrate_legacy_rules.py`.
    """
    database_url = database_url_override or DATABASE_URL
    if not _is_sqlite_url(database_url):
        return

    use_engine = engine_override or engine

    dbapi_conn = use_engine.raw_connection()
    try:
        for table, columns in _LEGACY_COLUMNS.items():
            existing = _sqlite_table_columns(dbapi_conn, table)
            if not existing:
                continue
            missing = [(name, ddl) for name, ddl in columns if name not in existing]
            if not missing:
                continue
            cursor = dbapi_conn.cursor()
            try:
                for name, ddl in missing:
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
                dbapi_conn.commit()
            finally:
                cursor.close()
    finally:
        dbapi_conn.close()


def get_db() -> Iterator[Session]:
    """Get database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block at once, or nothing.

    Repositories created with `autocommit=False` only flush, so a scope
    operation that touches the root, its pattern record and its instances
    lands in a single commit.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db():
    """Initialize database schema.

    - SQLite (default dev): use `create_all()` and apply minimal legacy patches.
    - PostgreSQL: prefer Alembic migrations. Enable by setting `RUN_MIGRATIONS=true`.
    """
    from recurtask.database import models  # noqa: F401  (register tables on Base)

    run_migrations = os.getenv("RUN_MIGRATIONS", "False").lower() == "true"
    if run_migrations and not _is_sqlite_url(DATABASE_URL):
        from recurtask.database.migrate_runner import main as run_alembic

        run_alembic()
        return

    Base.metadata.create_all(bind=engine)
    ensure_legacy_schema_compat()
