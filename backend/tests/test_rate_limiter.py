from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from onboardx.utils.rate_limiter import rate_limit


def build_app():
    app = FastAPI()

    @app.get("/limited")
    def limited(_throttle: bool = Depends(rate_limit(requests=2, window=60))):
        return {"ok": True}

    @app.get("/other")
    def other(_throttle: bool = Depends(rate_limit(requests=2, window=60))):
        return {"ok": True}

    return app


def test_requests_over_the_limit_get_429():
    client = TestClient(build_app())

    assert client.get("/limited").status_code == 200
    assert client.get("/limited").status_code == 200
    response = client.get("/limited")

    assert response.status_code == 429
    assert "Rate limit exceeded" in response.json()["detail"]


def test_each_limiter_counts_separately():
    client = TestClient(build_app())
    client.get("/limited")
    client.get("/limited")

    assert client.get("/other").status_code == 200


def test_window_expiry_resets_the_count(monkeypatch):
    from onboardx.utils import rate_limiter

    now = [1000.0]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: now[0])
    client = TestClient(build_app())
    client.get("/limited")
    client.get("/limited")
    assert client.get("/limited").status_code == 429

    now[0] += 61
    assert client.get("/limited").status_code == 200
