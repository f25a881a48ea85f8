"""
Database configuration and session management.
Uses SQLAlchemy; SQLite for development, PostgreSQL for production.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator
from admissions.config import config


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT works on pysqlite.

    Upserts run inside savepoints; pysqlite's own transaction handling
    would otherwise commit them early.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_store_engine(url: str, **kwargs) -> Engine:
    """Create an engine for `url` with the per-dialect settings this service needs."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)  # SQLite specific
        sqlite_engine = create_engine(url, connect_args=connect_args, **kwargs)
        _enable_sqlite_savepoints(sqlite_engine)
        return sqlite_engine

    # PostgreSQL
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
        echo=config.DEBUG,  # Log SQL queries in debug mode
        **kwargs,
    )


engine = create_store_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.

    Usage in FastAPI:
        @router.get("/leads")
        def list_leads(db: Session = Depends(get_db)):
            return LeadService.lead_summary(db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database - create all tables.
    Called on application startup.
    """
    # Registers the tables on Base.metadata.
    from admissions import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
