from fastapi.testclient import TestClient

from movieclub.main import app


def test_health():
    # no context manager: startup (real Mongo connection) is not run
    c = TestClient(app)
    r = c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"]
