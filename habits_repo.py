# habits_repo.py
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    create_engine, MetaData, Table, Column, String, Text, DateTime, select
)
from sqlalchemy.exc import SQLAlchemyError

from local_storage import StorageError

# -------------------------
# Engine
# -------------------------
def make_engine(database_url: str = "sqlite:///habits.db"):
    """Create and return a SQLAlchemy engine (SQLite by default)."""
    return create_engine(database_url, future=True)

# -------------------------
# Schema (module-level, shared)
# -------------------------
metadata = MetaData()

kv_store = Table(
    "kv_store", metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime, nullable=False, default=datetime.now),
)

# -------------------------
# DB init
# -------------------------
def init_db(engine):
    """Create tables if they do not exist."""
    metadata.create_all(engine)

# -------------------------
# Storage
# -------------------------
class SQLStorage:
    """
    Key/value persistence on top of a SQL database.
    Each key holds one serialized document; writes replace it inside a transaction.
    """

    def __init__(self, engine, create_tables: bool = True):
        self.engine = engine
        if create_tables:
            try:
                init_db(engine)
            except SQLAlchemyError as e:
                raise StorageError(f"Error creating tables: {e}") from e

    def read(self, key: str) -> Optional[str]:
        stmt = select(kv_store.c.value).where(kv_store.c.key == key)
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).scalar()
        except SQLAlchemyError as e:
            raise StorageError(f"Error reading '{key}': {e}") from e

    def write(self, key: str, value: str):
        payload = {"value": value, "updated_at": datetime.now()}
        try:
            with self.engine.begin() as conn:  # ensures commit
                updated = conn.execute(
                    kv_store.update().where(kv_store.c.key == key).values(**payload)
                ).rowcount
                if not updated:
                    conn.execute(kv_store.insert().values(key=key, **payload))
        except SQLAlchemyError as e:
            raise StorageError(f"Error writing '{key}': {e}") from e
