from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def utcnow() -> datetime:
    # stored naive; every timestamp in the store is UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CodiPartida(SQLModel, table=True):
    __tablename__ = "CodiPartida"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    numero: int = 0


class Jugador(SQLModel, table=True):
    __tablename__ = "Jugadors"  # type: ignore[assignment]

    idGrup: str = Field(primary_key=True)
    nomGrup: str
    numeroClaus: Optional[int] = None
    numeroPartida: int
    guanyador: Optional[bool] = False
    dataPartida: datetime = Field(default_factory=utcnow)
    darreraConnexio: datetime = Field(default_factory=utcnow)
