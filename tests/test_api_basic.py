from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine, Session, select
from partides.main import app
from partides import models


def setup_db(tmp_path, codi=None):
    db = tmp_path / 'api.db'
    engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    if codi is not None:
        with Session(engine) as s:
            s.add(models.CodiPartida(numero=codi))
            s.commit()
    app.state.engine = engine
    return engine


def stored_codes(engine):
    with Session(engine) as s:
        return [row.numero for row in s.exec(select(models.CodiPartida)).all()]


def test_root_and_health(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)

    r = client.get('/')
    assert r.status_code == 200
    assert r.text == "API funcionant!"
    assert r.headers['content-type'].startswith('text/plain')

    h = client.get('/health')
    assert h.status_code == 200
    assert h.json() == {"status": "ok"}


def test_request_id_is_echoed(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)

    r = client.get('/', headers={"X-Request-ID": "abc-123"})
    assert r.headers.get('X-Request-ID') == 'abc-123'
    # generated when the client does not send one
    assert client.get('/').headers.get('X-Request-ID')


def test_cors_allows_any_origin(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)

    r = client.get('/jugadors', headers={"Origin": "https://example.org"})
    assert r.headers.get('access-control-allow-origin') == '*'

    pre = client.options('/jugadors/A1', headers={
        "Origin": "https://example.org",
        "Access-Control-Request-Method": "PUT",
    })
    assert pre.status_code == 200


def test_nova_partida_increments_counter(tmp_path):
    engine = setup_db(tmp_path, codi=5)
    client = TestClient(app)

    r = client.get('/novapartida')
    assert r.status_code == 200
    assert r.json() == {"codiPartida": 6}
    assert stored_codes(engine) == [6]


def test_nova_partida_sequence_has_no_gaps(tmp_path):
    engine = setup_db(tmp_path, codi=10)
    client = TestClient(app)

    codes = [client.get('/novapartida').json()['codiPartida'] for _ in range(5)]
    assert codes == [11, 12, 13, 14, 15]
    assert stored_codes(engine) == [15]


def test_nova_partida_uses_highest_row(tmp_path):
    engine = setup_db(tmp_path, codi=3)
    with Session(engine) as s:
        s.add(models.CodiPartida(numero=9))
        s.commit()
    client = TestClient(app)

    r = client.get('/novapartida')
    assert r.json() == {"codiPartida": 10}
    assert sorted(stored_codes(engine)) == [3, 10]


def test_nova_partida_without_counter_row(tmp_path):
    engine = setup_db(tmp_path)
    client = TestClient(app)

    r = client.get('/novapartida')
    assert r.status_code == 500
    body = r.json()
    assert body['kind'] == 'internal'
    assert body['error']
    assert stored_codes(engine) == []


def test_nova_partida_store_failure_is_500(tmp_path):
    # tables never created: every store call fails
    db = tmp_path / 'empty.db'
    app.state.engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    client = TestClient(app)

    r = client.get('/novapartida')
    assert r.status_code == 500
    assert r.json()['kind'] == 'internal'
    assert 'CodiPartida' in r.json()['error']


def test_concurrent_nova_partida_never_repeats_a_code(tmp_path):
    from concurrent.futures import ThreadPoolExecutor
    engine = setup_db(tmp_path, codi=0)
    client = TestClient(app)

    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(pool.map(lambda _: client.get('/novapartida'), range(20)))

    codes = sorted(r.json()['codiPartida'] for r in responses if r.status_code == 200)
    assert codes, "at least one request must win the counter"
    assert codes == list(range(1, len(codes) + 1))
    for r in responses:
        if r.status_code != 200:
            assert r.status_code == 500
            assert r.json()['kind'] in ('conflict', 'internal')
    assert stored_codes(engine) == [len(codes)]
