"""Database configuration and session management.

The default backend is SQLite, configured for a web application: WAL mode so
readers are not blocked while a lifecycle transition is being written, and
foreign key enforcement so setup photos always reference an existing event.

Every lifecycle operation is a single read-modify-write committed in one
session, so per-row atomicity is all the engine relies on. Concurrent writers
against the same event resolve as last write wins.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from vendor_tracker.core.config import settings

# FastAPI may hand a session to a different thread than the one that created
# its connection, which SQLite rejects unless check_same_thread is disabled.
connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    if not settings.database_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Import models so they are registered on the metadata
    import vendor_tracker.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
