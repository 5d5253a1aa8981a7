"""
Ordered, idempotent schema migrations.

Each migration runs at most once per database; applied versions are
recorded in schema_migrations. Every step also checks the live schema
before changing it, so databases created by older releases (missing the
enrichment columns or the dedup index) are brought up to date safely.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List
from sqlalchemy import inspect, select, text
from sqlalchemy.engine import Connection, Engine
from fintrack.infrastructure.database.models import Base, SchemaMigration, TransactionRecord

logger = logging.getLogger(__name__)

ENRICHMENT_COLUMNS = (
    "subcategory",
    "transaction_method",
    "location",
    "reference_number",
    "enrichment_confidence",
    "anomaly_flags",
    "insight",
)

DEDUP_INDEX = "uq_transactions_user_dedup"


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection], None]


def _create_tables(conn: Connection) -> None:
    Base.metadata.create_all(bind=conn)


def _add_enrichment_columns(conn: Connection) -> None:
    existing = {c["name"] for c in inspect(conn).get_columns("transactions")}
    table = TransactionRecord.__table__
    for name in ENRICHMENT_COLUMNS:
        if name in existing:
            continue
        column_type = table.c[name].type.compile(dialect=conn.dialect)
        conn.execute(text(f"ALTER TABLE transactions ADD COLUMN {name} {column_type}"))
        logger.info("Added column", extra={"table": "transactions", "column": name})


def _ensure_dedup_index(conn: Connection) -> None:
    inspector = inspect(conn)
    names = {c["name"] for c in inspector.get_unique_constraints("transactions")}
    names |= {i["name"] for i in inspector.get_indexes("transactions")}
    if DEDUP_INDEX in names:
        return
    conn.execute(text(f"CREATE UNIQUE INDEX {DEDUP_INDEX} ON transactions (user_id, dedup_key)"))
    logger.info("Created index", extra={"table": "transactions", "index": DEDUP_INDEX})


MIGRATIONS: List[Migration] = [
    Migration(1, "create core tables", _create_tables),
    Migration(2, "add enrichment columns to transactions", _add_enrichment_columns),
    Migration(3, "unique dedup key per user", _ensure_dedup_index),
]


def applied_versions(conn: Connection) -> List[int]:
    if not inspect(conn).has_table(SchemaMigration.__tablename__):
        return []
    return sorted(conn.execute(select(SchemaMigration.version)).scalars())


def migrate(engine: Engine) -> List[int]:
    """Apply pending migrations in version order; returns the versions applied now"""
    newly_applied = []
    with engine.begin() as conn:
        SchemaMigration.__table__.create(bind=conn, checkfirst=True)
        done = set(applied_versions(conn))
        for migration in sorted(MIGRATIONS, key=lambda m: m.version):
            if migration.version in done:
                continue
            migration.apply(conn)
            conn.execute(
                SchemaMigration.__table__.insert().values(
                    version=migration.version, description=migration.description
                )
            )
            newly_applied.append(migration.version)
            logger.info(
                "Applied migration",
                extra={"version": migration.version, "description": migration.description},
            )
    return newly_applied
