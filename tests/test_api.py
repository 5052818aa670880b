import httpx
import pytest
from fastapi.testclient import TestClient

from chatkeeper.api import app, get_keeper
from chatkeeper.hashing import sha256_hex


@pytest.fixture
def client_for(make_keeper):
    def factory(**kwargs):
        keeper = make_keeper(**kwargs)
        app.dependency_overrides[get_keeper] = lambda: keeper
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


def _import(client, content="hello"):
    response = client.post("/records", json={"title": "Chat", "content": content, "source_platform": "Claude"})
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client_for):
    response = client_for().get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_import_and_fetch(client_for):
    client = client_for()
    created = _import(client)

    assert created["current_hash"] == sha256_hex("hello")
    assert [e["action"] for e in created["entries"]] == ["Imported", "Hashed"]

    listing = client.get("/records").json()
    assert [r["id"] for r in listing] == [created["id"]]

    fetched = client.get(f"/records/{created['id']}").json()
    assert fetched["content"] == "hello"
    assert client.get("/records/missing").status_code == 404


def test_verify_and_custody(client_for):
    client = client_for()
    created = _import(client)

    response = client.post(f"/records/{created['id']}/verify")
    assert response.status_code == 200
    assert response.json()["is_valid"] is True

    custody = client.get(f"/records/{created['id']}/custody").json()
    assert [e["action"] for e in custody] == ["Imported", "Hashed", "Verified"]

    report = client.get(f"/records/{created['id']}/report")
    assert report.headers["content-type"].startswith("text/plain")
    assert "[3] Verified" in report.text


def test_publish_failure_maps_to_bad_gateway(client_for):
    client = client_for()
    created = _import(client)

    response = client.post(
        f"/records/{created['id']}/publish",
        json={"service": "Custom Webhook", "url": "http://127.0.0.1:9/hook"},
    )
    assert response.status_code == 502
    assert client.get(f"/records/{created['id']}").json()["publications"] == []


def test_publish_success(client_for):
    client = client_for(handler=lambda r: httpx.Response(200, content=b"proof"))
    created = _import(client)

    response = client.post(f"/records/{created['id']}/publish", json={"service": "OpenTimestamps"})

    assert response.status_code == 201
    body = response.json()
    assert body["record_id"] == created["id"]
    assert body["status"] == "pending"


def test_publish_invalid_url_is_unprocessable(client_for):
    client = client_for()
    created = _import(client)
    response = client.post(
        f"/records/{created['id']}/publish", json={"service": "Custom Webhook", "url": "not a url"}
    )
    assert response.status_code == 422


def test_backup_requires_mirror(client_for, tmp_path):
    client = client_for()
    created = _import(client)
    assert client.post(f"/records/{created['id']}/backup", json={}).status_code == 400

    client = client_for(mirror_dir=str(tmp_path / "mirror"))
    response = client.post(f"/records/{created['id']}/backup", json={"mirror": True})
    assert response.status_code == 200
    assert response.json()["paths"][0].startswith(str(tmp_path / "mirror"))


def test_delete(client_for):
    client = client_for()
    created = _import(client)
    assert client.delete(f"/records/{created['id']}").status_code == 204
    assert client.get(f"/records/{created['id']}").status_code == 404


def test_unsupported_service_is_unprocessable(client_for):
    client = client_for()
    created = _import(client)
    response = client.post(f"/records/{created['id']}/publish", json={"service": "Email"})
    assert response.status_code == 422
    assert client.get(f"/records/{created['id']}").json()["publications"] == []


def test_store_failure_maps_to_service_unavailable(client_for, storage):
    client = client_for()
    _import(client)

    storage.db_path.unlink()
    storage.db_path.mkdir()

    assert client.get("/records").status_code == 503
