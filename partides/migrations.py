"""
Schema migrations for the partides store.
Each migration is a named batch of SQL statements applied at most once.
"""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Field, text, Session, select
from typing import Optional
from datetime import datetime

from .logging_utils import get_logger
from .models import utcnow

logger = get_logger("partides.migrations")


class Migration(SQLModel, table=True):
    """Track applied migrations"""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    applied_at: datetime


MIGRATIONS = [
    (
        "001_jugadors_indexes",
        """
        -- listing and purge filters
        CREATE INDEX IF NOT EXISTS idx_jugadors_partida ON "Jugadors" ("numeroPartida");
        CREATE INDEX IF NOT EXISTS idx_jugadors_data_partida ON "Jugadors" ("dataPartida")
        """,
    ),
    (
        "002_codi_partida_index",
        """
        CREATE INDEX IF NOT EXISTS idx_codi_partida_numero ON "CodiPartida" ("numero")
        """,
    ),
]


def has_migration_been_applied(engine: Engine, migration_name: str) -> bool:
    Migration.metadata.create_all(engine, tables=[Migration.__table__])  # type: ignore[attr-defined]
    with Session(engine) as session:
        result = session.exec(
            select(Migration).where(Migration.name == migration_name)
        ).first()
        return result is not None


def apply_migration(engine: Engine, migration_name: str, migration_sql: str) -> bool:
    """Apply a migration and record it; return False when it was already applied."""
    if has_migration_been_applied(engine, migration_name):
        logger.debug("migration_skipped", extra={"migration": migration_name})
        return False

    with Session(engine) as session:
        try:
            for statement in migration_sql.strip().split(';'):
                # drop comment lines; the remainder may be empty
                statement = "\n".join(
                    line for line in statement.splitlines() if not line.strip().startswith("--")
                ).strip()
                if statement:
                    session.execute(text(statement))
            session.add(Migration(name=migration_name, applied_at=utcnow()))
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("migration_failed", extra={"migration": migration_name})
            raise

    logger.info("migration_applied", extra={"migration": migration_name})
    return True


def run_migrations(engine: Engine) -> int:
    """Run all pending migrations, return how many were applied."""
    applied = sum(1 for name, sql in MIGRATIONS if apply_migration(engine, name, sql))
    logger.info("migrations_completed", extra={"applied": applied})
    return applied
