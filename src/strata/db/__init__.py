"""Strata database layer."""

from strata.db.connection import Database, transaction
from strata.db.migrations import MIGRATIONS, run_migrations
from strata.db.repository import Repository
from strata.db.schema import initialize
from strata.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "transaction",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
