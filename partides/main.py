from fastapi import FastAPI, Body, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, field_validator
from sqlmodel import Session
from typing import Optional
from datetime import date, datetime, timezone
from starlette.middleware.base import BaseHTTPMiddleware

from . import crud, models
from .config import get_settings
from .deps import get_session
from .errors import ErrorKind, GENERIC_MESSAGE, StoreError, translate_store_errors
from .init_db import create_db_engine, init_db
from .logging_utils import setup_logging, get_logger, request_id_ctx

import re
import time
import uuid


_settings = get_settings()
setup_logging(_settings.log_level, log_format=_settings.log_format, use_color=_settings.log_color)
logger = get_logger("partides")
app = FastAPI(title="Partides API")


def internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": GENERIC_MESSAGE, "kind": ErrorKind.INTERNAL.value},
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        client = request.client.host if request.client else "-"
        ua = request.headers.get("user-agent", "-")
        response = None
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            logger.exception(
                "request_error",
                extra={"path": str(request.url), "method": request.method, "error": str(exc)},
            )
            # answered here so the CORS and request-id headers still apply
            response = internal_error_response()
            return response
        finally:
            duration_ms = int((time.time() - start) * 1000)
            status = getattr(response, "status_code", 500)
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": duration_ms,
                    "client": client,
                    "user_agent": ua,
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = rid
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)

# Any origin may call the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.warning(
        "store_error",
        extra={"method": request.method, "url": str(request.url), "kind": exc.kind.value, "error": exc.message},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    logger.warning("validation_error", extra={"method": request.method, "url": str(request.url), "errors": errors})
    return JSONResponse(
        status_code=400,
        content={"error": "Dades d'entrada invàlides", "kind": ErrorKind.INVALID.value, "detail": errors},
    )


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    # only reached for failures raised outside the request-logging middleware
    logger.error("unexpected_error", exc_info=exc, extra={"method": request.method, "url": str(request.url), "error": str(exc)})
    return internal_error_response()


@app.on_event("startup")
def on_startup():
    from .migrations import run_migrations

    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    init_db(engine, settings.initial_session_code)
    try:
        run_migrations(engine)
    except Exception as e:
        logger.warning("migrations_failed", extra={"error": str(e)})
    app.state.engine = engine


@app.on_event("shutdown")
def on_shutdown():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        engine.dispose()


@app.get("/", response_class=PlainTextResponse)
def root():
    return "API funcionant!"


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok"}


@app.get("/novapartida")
def nova_partida(session: Session = Depends(get_session)):
    with translate_store_errors(500):
        nou = crud.issue_session_code(session)
    logger.info("nova_partida", extra={"codi": nou})
    return {"codiPartida": nou}


@app.get("/jugadors")
def llista_jugadors(session: Session = Depends(get_session)):
    with translate_store_errors(400):
        return crud.list_players(session)


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class JugadorCreate(BaseModel):
    idGrup: str
    nomGrup: str
    numeroClaus: Optional[int] = None
    numeroPartida: int
    guanyador: Optional[bool] = False
    dataPartida: Optional[datetime] = None
    darreraConnexio: Optional[datetime] = None

    @field_validator('idGrup', 'nomGrup', mode='before')
    @classmethod
    def coerce_to_str(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator('dataPartida', 'darreraConnexio')
    @classmethod
    def to_naive_utc(cls, v):
        return _naive_utc(v)


class JugadorUpdate(BaseModel):
    numeroClaus: Optional[int] = None
    guanyador: Optional[bool] = None


class PurgeRequest(BaseModel):
    data: Optional[str] = None


@app.post("/jugadors", status_code=201)
def registra_jugador(body: JugadorCreate, session: Session = Depends(get_session)):
    jugador = models.Jugador(**body.model_dump(exclude_none=True))
    with translate_store_errors(400):
        creat = crud.register_player(session, jugador)
    if creat is None:
        raise StoreError(ErrorKind.INVALID, "Codi de partida invàlid o inexistent")
    logger.info("jugador_registrat", extra={"id_grup": creat.idGrup, "codi": creat.numeroPartida})
    return {
        "idGrup": creat.idGrup,
        "nomGrup": creat.nomGrup,
        "numeroClaus": creat.numeroClaus,
        "numeroPartida": creat.numeroPartida,
    }


@app.put("/jugadors/{idGrup}")
def actualitza_jugador(idGrup: str, body: JugadorUpdate, session: Session = Depends(get_session)):
    with translate_store_errors(500):
        found = crud.update_player(session, idGrup, body.numeroClaus, body.guanyador)
    if not found:
        raise StoreError(ErrorKind.NOT_FOUND, "Jugador no trobat")
    return {"message": "Jugador actualitzat correctament"}


def parse_cutoff(data: Optional[str]) -> date:
    """Cutoff day for the purge; today (UTC) when not given."""
    if not data:
        return datetime.now(timezone.utc).date()
    if not re.match(r'^\d{4}-\d{2}-\d{2}$', data):
        raise StoreError(ErrorKind.INVALID, "Format de data invàlid. Utilitza YYYY-MM-DD")
    try:
        return date.fromisoformat(data)
    except ValueError:
        raise StoreError(ErrorKind.INVALID, "Data inexistent: " + data)


@app.delete("/jugadors/antics")
def elimina_jugadors_antics(body: Optional[PurgeRequest] = Body(None), session: Session = Depends(get_session)):
    cutoff = parse_cutoff(body.data if body else None)
    with translate_store_errors(400):
        eliminats = crud.purge_stale_players(session, cutoff)
    data_limit = cutoff.isoformat()
    logger.info("jugadors_antics_eliminats", extra={"data_limit": data_limit, "eliminats": eliminats})
    return {
        "message": "Jugadors antics eliminats",
        "dataLimit": data_limit,
        "eliminats": eliminats,
    }


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
