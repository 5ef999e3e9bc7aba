"""Database connection and session management.

The store is a single SQLite file (``DB_PATH``) shared by the poll daemons
and the reporting layer.  Pass ``":memory:"`` for a throwaway in-process
database (tests, dry runs).
"""

from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import BatchmonConfig
from .models import Base, Group

MEMORY_DB = ":memory:"

# Group whose members see every job unredacted
ADMIN_GROUP = "admin"


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Configure SQLite for concurrent daemon access.

    - WAL mode: Allows concurrent readers (reporting) during daemon writes
    - synchronous=NORMAL: Faster writes with acceptable durability
    - foreign_keys: Enable foreign key constraints
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db_path(db_path: str | Path | None = None) -> str:
    """Return the database location, defaulting to ``BatchmonConfig.DB_PATH``."""
    if db_path is None:
        return str(BatchmonConfig.DB_PATH)
    return str(db_path)


def get_engine(db_path: str | Path | None = None, echo: bool = False):
    """Create and return a SQLAlchemy engine for the store.

    Args:
        db_path: SQLite file path, ``":memory:"``, or None for the configured path
        echo: If True, log all SQL statements

    Returns:
        SQLAlchemy Engine instance
    """
    location = get_db_path(db_path)

    if location == MEMORY_DB:
        # One shared connection so every session sees the same in-memory DB
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        path = Path(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{path}",
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


def get_session_factory(engine):
    """Return a sessionmaker bound to *engine*."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session(db_path: str | Path | None = None, engine=None):
    """Create and return a new database session.

    Args:
        db_path: Database location (ignored when engine is given)
        engine: Existing engine to use. If None, creates a new one.

    Returns:
        SQLAlchemy Session instance
    """
    if engine is None:
        engine = get_engine(db_path)
    return get_session_factory(engine)()


def init_db(db_path: str | Path | None = None, echo: bool = False):
    """Create all tables and seed the admin group.

    Args:
        db_path: Database location, or None for the configured path
        echo: If True, log all SQL statements

    Returns:
        Engine instance
    """
    engine = get_engine(db_path, echo=echo)
    Base.metadata.create_all(engine)
    with get_session_factory(engine)() as session:
        session.merge(Group(name=ADMIN_GROUP))
        session.commit()
    return engine
