import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlmodel import SQLModel, create_engine
from partides.main import app
from partides import crud
from partides.errors import ErrorKind, StoreError, translate_store_errors


def setup_db(tmp_path):
    db = tmp_path / 'errors.db'
    engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    app.state.engine = engine
    return engine


@pytest.mark.parametrize("exc_type,kind", [
    (IntegrityError, ErrorKind.CONFLICT),
    (DataError, ErrorKind.INVALID),
    (OperationalError, ErrorKind.INTERNAL),
])
def test_translate_store_errors(exc_type, kind):
    with pytest.raises(StoreError) as info:
        with translate_store_errors(400):
            raise exc_type("INSERT ...", {}, Exception("boom"))
    assert info.value.kind is kind
    assert info.value.status_code == 400
    assert info.value.to_dict() == {"error": "boom", "kind": kind.value}


def test_translate_leaves_other_errors_alone():
    with pytest.raises(KeyError):
        with translate_store_errors(400):
            raise KeyError("x")


def test_default_status_per_kind():
    assert StoreError(ErrorKind.NOT_FOUND, "x").status_code == 404
    assert StoreError(ErrorKind.INVALID, "x").status_code == 400
    assert StoreError(ErrorKind.CONFLICT, "x").status_code == 400
    assert StoreError(ErrorKind.INTERNAL, "x").status_code == 500
    assert StoreError(ErrorKind.NOT_FOUND, "x", 500).status_code == 500


def test_list_store_failure_is_400(tmp_path):
    # tables never created
    db = tmp_path / 'missing.db'
    app.state.engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    client = TestClient(app)

    r = client.get('/jugadors')
    assert r.status_code == 400
    assert r.json()['kind'] == 'internal'
    assert 'Jugadors' in r.json()['error']

    p = client.request('DELETE', '/jugadors/antics', json={"data": "2024-01-01"})
    assert p.status_code == 400


def test_unexpected_error_is_generic_500(tmp_path, monkeypatch):
    setup_db(tmp_path)

    def boom(session):
        raise RuntimeError("malformed")

    monkeypatch.setattr(crud, "list_players", boom)
    client = TestClient(app)
    r = client.get('/jugadors', headers={"Origin": "https://example.org", "X-Request-ID": "rid-500"})
    assert r.status_code == 500
    assert r.json() == {"error": "Error intern servidor", "kind": "internal"}
    # cross-origin clients can still read the failure
    assert r.headers.get('access-control-allow-origin') == '*'
    assert r.headers.get('X-Request-ID') == 'rid-500'
