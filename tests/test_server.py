import pytest
from httpx import ASGITransport, AsyncClient

from server import __main__ as entry
from server.main import app
from typed_sql import db as db_module


@pytest.fixture
def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_plus(client):
    async with client as ac:
        response = await ac.post("/plus", json={"x": 1, "y": 2})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "data": {"total": 3.0}}


@pytest.mark.asyncio
async def test_square_root(client):
    async with client as ac:
        response = await ac.post("/square_root", json={"x": 9})
    assert response.json() == {"ok": True, "data": {"sqrt": 3.0}}


@pytest.mark.asyncio
async def test_square_root_of_negative_is_an_error_envelope(client):
    async with client as ac:
        response = await ac.post("/square_root", json={"x": -1})
    assert response.status_code == 200
    assert response.json()["ok"] is False


@pytest.mark.asyncio
async def test_throws_error(client):
    async with client as ac:
        response = await ac.post("/throws_error", json={"message": "boom"})
    assert response.json() == {"ok": False, "message": "boom"}


@pytest.mark.asyncio
async def test_invalid_input_is_an_error_envelope(client):
    async with client as ac:
        response = await ac.post("/plus", json={"x": "nope"})
    body = response.json()
    assert body["ok"] is False
    assert "validation error" in body["message"]


@pytest.mark.asyncio
async def test_health(client):
    async with client as ac:
        response = await ac.post("/health", json={})
    assert response.json() == {"ok": True, "data": {"status": "ok"}}


@pytest.mark.asyncio
async def test_db_health(client, monkeypatch, conn, database):
    monkeypatch.setattr(db_module, "_db", database)
    conn.respond([{"?column?": 2}])
    async with client as ac:
        response = await ac.get("/db/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "one_plus_one": 2}


@pytest.mark.asyncio
async def test_missing_row_maps_to_404(client, monkeypatch, conn, database):
    monkeypatch.setattr(db_module, "_db", database)
    conn.respond([])
    async with client as ac:
        response = await ac.get("/db/health")
    assert response.status_code == 404
    assert response.json()["ok"] is False


@pytest.mark.asyncio
async def test_uninitialized_db_maps_to_500(client, monkeypatch):
    monkeypatch.setattr(db_module, "_db", None)
    async with client as ac:
        response = await ac.get("/db/health")
    assert response.status_code == 500
    assert "not initialized" in response.json()["message"]


@pytest.mark.asyncio
async def test_overflowing_sum_is_an_error_envelope(client):
    async with client as ac:
        response = await ac.post("/plus", json={"x": 1e308, "y": 1e308})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert "finite" in body["message"]


@pytest.mark.asyncio
@pytest.mark.parametrize("x", ["NaN", "inf", "-Infinity"])
async def test_non_finite_input_is_an_error_envelope(client, x):
    async with client as ac:
        response = await ac.post("/square_root", json={"x": x})
    assert response.status_code == 200
    assert response.json()["ok"] is False


def test_host_and_port_defaults(monkeypatch):
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    assert (entry.host(), entry.port()) == ("127.0.0.1", 15347)


def test_host_and_port_from_env(monkeypatch):
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "8080")
    assert (entry.host(), entry.port()) == ("0.0.0.0", 8080)

    monkeypatch.setenv("PORT", "not-a-port")
    assert entry.port() == 15347
    monkeypatch.setenv("PORT", "70000")
    assert entry.port() == 15347


def test_main_runs_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.delenv("PORT", raising=False)
    entry.main()
    assert calls == [("server.main:app", {"host": "0.0.0.0", "port": 15347})]
