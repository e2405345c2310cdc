from runebox.db.database import create_engine, ensure_database_dir
from runebox.db.migrations import (
    MIGRATIONS,
    SCHEMA_VERSION,
    Migration,
    SchemaMigrator,
)
from runebox.db.store import LocalStore, card_set_to_model, card_to_model, card_to_row

__all__ = [
    "MIGRATIONS",
    "SCHEMA_VERSION",
    "LocalStore",
    "Migration",
    "SchemaMigrator",
    "card_set_to_model",
    "card_to_model",
    "card_to_row",
    "create_engine",
    "ensure_database_dir",
]
