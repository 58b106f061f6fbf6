"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect, text
from sqlmodel import SQLModel, create_engine, Session

from autotrader.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _run_migrations(target=None):
    """Run lightweight schema migrations for indexes added after first release."""
    target = target or engine
    inspector = inspect(target)

    if "position" not in inspector.get_table_names():
        return

    # Ensure only one position can ever reference a given entry order
    existing_indexes = inspector.get_indexes("position")
    has_unique_idx = any(
        idx["name"] == "ix_position_entry_order_id_unique" for idx in existing_indexes
    )
    if not has_unique_idx:
        logger.info("Migrating: adding unique index on position.entry_order_id")
        with target.connect() as conn:
            conn.execute(text(
                "CREATE UNIQUE INDEX IF NOT EXISTS ix_position_entry_order_id_unique "
                "ON position (entry_order_id)"
            ))
            conn.commit()


def create_db_and_tables(target=None):
    """Create all tables. Called on startup."""
    import autotrader.models  # noqa: F401  (registers tables on the metadata)

    target = target or engine
    SQLModel.metadata.create_all(target)
    _run_migrations(target)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
