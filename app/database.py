from pathlib import Path

from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, declarative_base
from app.config import get_settings
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

db_url = settings.database_url

if db_url.startswith("sqlite:///./"):
    Path(db_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)

connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}

engine = create_engine(db_url, connect_args=connect_args)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not db_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Entities are handed to the notifier after commit, so keep their loaded state.
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _sqlite_col_type(col) -> str:
    """Convert a SQLAlchemy column type to a SQLite type string."""
    type_name = type(col.type).__name__
    type_map = {
        "Integer": "INTEGER",
        "Numeric": "NUMERIC",
        "Boolean": "BOOLEAN",
        "Date": "DATE",
        "DateTime": "DATETIME",
        "JSON": "JSON",
        "Text": "TEXT",
        "String": f"VARCHAR({col.type.length})" if getattr(col.type, "length", None) else "TEXT",
        "Enum": "VARCHAR(20)",
    }
    return type_map.get(type_name, "TEXT")


def _sqlite_default(col) -> str:
    """Extract a DEFAULT clause from a SQLAlchemy column, or empty string."""
    if col.default is None or col.default.arg is None:
        return ""
    val = col.default.arg
    if callable(val):
        return ""
    if isinstance(val, bool):
        return f" DEFAULT {1 if val else 0}"
    if isinstance(val, (int, float)):
        return f" DEFAULT {val}"
    if hasattr(val, "value"):
        val = val.value
    escaped = str(val).replace("'", "''")
    return f" DEFAULT '{escaped}'"


def ensure_sqlite_columns():
    """Add any model columns missing from an existing SQLite database."""
    added = 0
    with engine.connect() as conn:
        for table in Base.metadata.sorted_tables:
            result = conn.execute(text(f"PRAGMA table_info({table.name})")).fetchall()
            existing_cols = {r[1] for r in result}
            if not existing_cols:
                continue

            for col in table.columns:
                if col.name in existing_cols:
                    continue

                col_type = _sqlite_col_type(col)
                default = _sqlite_default(col)
                # NOT NULL without DEFAULT is invalid for ALTER TABLE ADD COLUMN in SQLite
                nullable = "" if col.nullable or not default else " NOT NULL"

                ddl = f"ALTER TABLE {table.name} ADD COLUMN {col.name} {col_type}{nullable}{default}"
                conn.execute(text(ddl))
                logger.info(f"Added column {table.name}.{col.name}")
                added += 1

        conn.commit()

    if added:
        logger.info(f"Schema migration: added {added} column(s)")
