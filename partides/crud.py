from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import delete as sa_delete, desc, update as sa_update
from sqlmodel import Session, select

from . import models
from .errors import ErrorKind, StoreError
from .logging_utils import get_logger

logger = get_logger("partides.crud")


def get_current_session_code(session: Session) -> Optional[models.CodiPartida]:
    """Return the counter row holding the highest session code, if any."""
    return session.exec(
        select(models.CodiPartida)
        .order_by(desc(models.CodiPartida.numero))
        .limit(1)
    ).first()


def ensure_session_counter(session: Session, initial: int = 0) -> models.CodiPartida:
    row = get_current_session_code(session)
    if row is not None:
        return row
    row = models.CodiPartida(numero=initial)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("session_counter_seeded", extra={"codi": initial})
    return row


def issue_session_code(session: Session) -> int:
    """Advance the session counter by one and return the new code.

    The read and the conditional write run in a single transaction; the row
    is locked on engines that support ``SELECT ... FOR UPDATE`` and the write
    only applies while ``numero`` still holds the value that was read.
    """
    row = session.exec(
        select(models.CodiPartida)
        .order_by(desc(models.CodiPartida.numero))
        .limit(1)
        .with_for_update()
    ).first()
    if row is None:
        raise StoreError(ErrorKind.INTERNAL, "No hi ha cap codi de partida inicialitzat", 500)

    current = row.numero
    nou = current + 1
    result = session.execute(
        sa_update(models.CodiPartida)
        .where(models.CodiPartida.id == row.id)
        .where(models.CodiPartida.numero == current)
        .values(numero=nou)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        raise StoreError(ErrorKind.CONFLICT, "El codi de partida ha canviat durant l'actualització", 500)
    session.commit()
    return nou


def list_players(session: Session) -> List[models.Jugador]:
    return list(session.exec(select(models.Jugador).order_by(models.Jugador.idGrup)).all())


def get_player(session: Session, id_grup: str) -> Optional[models.Jugador]:
    return session.get(models.Jugador, id_grup)


def register_player(session: Session, jugador: models.Jugador) -> Optional[models.Jugador]:
    """Insert a player whose session code is not beyond the latest issued one.

    Returns None when no counter row exists or ``numeroPartida`` is in the
    future; store failures (duplicate ``idGrup``) propagate.
    """
    latest = get_current_session_code(session)
    if latest is None or jugador.numeroPartida > latest.numero:
        return None
    session.add(jugador)
    session.commit()
    session.refresh(jugador)
    return jugador


def update_player(session: Session, id_grup: str, numero_claus: Optional[int], guanyador: Optional[bool]) -> bool:
    # both fields are written as given; None clears the stored value
    result = session.execute(
        sa_update(models.Jugador)
        .where(models.Jugador.idGrup == id_grup)
        .values(numeroClaus=numero_claus, guanyador=guanyador, darreraConnexio=models.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        return False
    session.commit()
    return True


def purge_limit(cutoff: date) -> Optional[datetime]:
    """First instant after the cutoff day; rows strictly before it are stale.

    None for the last representable day, where every row is stale.
    """
    if cutoff >= date.max:
        return None
    return datetime.combine(cutoff + timedelta(days=1), time.min)


def purge_stale_players(session: Session, cutoff: date) -> int:
    """Delete every player whose session date is on or before ``cutoff``."""
    stmt = sa_delete(models.Jugador)
    limit = purge_limit(cutoff)
    if limit is not None:
        stmt = stmt.where(models.Jugador.dataPartida < limit)
    result = session.execute(stmt.execution_options(synchronize_session=False))
    session.commit()
    return result.rowcount or 0
