from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from wayfinder.api import idempotency as idempotency_module
from wayfinder.api.idempotency import IdempotentAPIRoute


class StubRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and key in self.store:
            return False
        self.store[key] = value
        return True

    async def delete(self, key: str):
        self.store.pop(key, None)


def build_app():
    app = FastAPI()
    app.router.route_class = IdempotentAPIRoute
    calls = {"count": 0}

    @app.post("/seeds", status_code=201)
    async def create(payload: dict):
        calls["count"] += 1
        return {"text": payload["text"], "call": calls["count"]}

    @app.post("/fail")
    async def fail(payload: dict):
        calls["count"] += 1
        raise HTTPException(status_code=400, detail="nope")

    return app, calls


HEADERS = {
    "X-User-ID": "user-1",
    "Idempotency-Key": "key-1",
}


def test_idempotent_route_replays_response(monkeypatch):
    redis_client = StubRedis()
    monkeypatch.setattr(idempotency_module, "get_redis_client", lambda: redis_client)
    app, calls = build_app()
    client = TestClient(app)

    first = client.post("/seeds", json={"text": "first"}, headers=HEADERS)
    assert first.status_code == 201
    assert first.json() == {"text": "first", "call": 1}

    second = client.post("/seeds", json={"text": "second"}, headers=HEADERS)
    assert second.status_code == 201
    assert second.json() == {"text": "first", "call": 1}
    assert calls["count"] == 1


def test_requests_without_key_skip_redis(monkeypatch):
    def _unexpected():
        raise AssertionError("redis should not be used")

    monkeypatch.setattr(idempotency_module, "get_redis_client", _unexpected)
    app, calls = build_app()
    client = TestClient(app)

    client.post("/seeds", json={"text": "a"})
    client.post("/seeds", json={"text": "a"})
    assert calls["count"] == 2


def test_failed_responses_are_not_stored(monkeypatch):
    redis_client = StubRedis()
    monkeypatch.setattr(idempotency_module, "get_redis_client", lambda: redis_client)
    app, calls = build_app()
    client = TestClient(app)

    assert client.post("/fail", json={}, headers=HEADERS).status_code == 400
    assert client.post("/fail", json={}, headers=HEADERS).status_code == 400
    assert calls["count"] == 2
    assert redis_client.store == {}


def test_concurrent_duplicate_is_rejected(monkeypatch):
    redis_client = StubRedis()
    redis_client.store["idempotency:user-1:/seeds:key-1:lock"] = "1"
    monkeypatch.setattr(idempotency_module, "get_redis_client", lambda: redis_client)
    app, calls = build_app()
    client = TestClient(app)

    response = client.post("/seeds", json={"text": "x"}, headers=HEADERS)
    assert response.status_code == 409
    assert calls["count"] == 0
