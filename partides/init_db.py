from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from . import crud
from . import models  # noqa: F401  (registers the tables on SQLModel.metadata)
from .config import get_settings
from .logging_utils import get_logger, setup_logging

logger = get_logger("partides.init_db")


def create_db_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    # pooled connections for server databases
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


def init_db(engine: Engine, initial_session_code: int = 0) -> None:
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        codi = crud.ensure_session_counter(session, initial_session_code).numero
    logger.info("db_initialized", extra={"url": engine.url.render_as_string(hide_password=True), "codi": codi})


if __name__ == '__main__':
    from .migrations import run_migrations

    settings = get_settings()
    setup_logging(settings.log_level, log_format=settings.log_format, use_color=settings.log_color)
    engine = create_db_engine(settings.database_url)
    init_db(engine, settings.initial_session_code)
    run_migrations(engine)
