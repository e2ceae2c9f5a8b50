"""Integration tests for main — FastAPI upload endpoints.

The upload flow is wired to the in-memory fakes from conftest so no network,
database or storage service is touched:

- ``POST /upload`` — form action, redirects to ``/p/{key}``.
- ``/api/upload`` — JSON variant, ``{"key": ...}`` or 405 for other methods.
- ``GET /jobs/{key}`` — upload record lookup.
- ``GET /healthz`` — configuration summary.
"""

import pytest
from fastapi.testclient import TestClient

import main
from app.db import SqlKeyValueStore
from app.services import get_store, get_upload_flow

AUTH = {"Authorization": "Bearer good-token"}


def _image(size: int = 2 * 1024 * 1024):
    return {"image": ("photo.jpg", b"\xff\xd8\xff" + b"\x00" * size, "image/jpeg")}


@pytest.fixture
def test_client(flow):
    main.app.dependency_overrides[get_upload_flow] = lambda: flow
    with TestClient(main.app) as client:
        yield client
    main.app.dependency_overrides.clear()


class TestUploadAction:
    def test_success_redirects_to_result_page(self, test_client, store):
        resp = test_client.post("/upload", files=_image(), headers=AUTH, follow_redirects=False)
        assert resp.status_code == 303
        key = resp.headers["location"].removeprefix("/p/")
        assert key in store.records
        assert store.credits["user-1"] == 5

    def test_cookie_auth(self, test_client, store):
        test_client.cookies.set("sb-access-token", "good-token")
        resp = test_client.post("/upload", files=_image(10), follow_redirects=False)
        assert resp.status_code == 303

    def test_unauthenticated(self, test_client):
        resp = test_client.post("/upload", files=_image(10))
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_insufficient_credits(self, test_client, store, blob_store):
        resp = test_client.post("/upload", files=_image(10), headers={"Authorization": "Bearer poor-token"})
        assert resp.status_code == 402
        assert store.credits["poor-user"] == 5
        assert store.records == {}
        assert blob_store.objects == {}

    def test_missing_image(self, test_client):
        resp = test_client.post("/upload", data={"other": "x"}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing image"}

    def test_image_sent_as_text(self, test_client, store, events):
        resp = test_client.post("/upload", data={"image": "not-a-file"}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing image"}
        assert store.records == {}
        assert "upload" not in [e[0] for e in events]

    def test_image_sent_as_text_unauthenticated(self, test_client):
        resp = test_client.post("/upload", data={"image": "not-a-file"})
        assert resp.status_code == 401

    def test_rate_limited(self, test_client, rate_limiter, events):
        rate_limiter.allow = False
        resp = test_client.post("/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 429
        assert [e[0] for e in events] == ["limit"]
        assert resp.json() == {"error": "Don't DDoS me pls 🥺"}

    def test_storage_failure(self, test_client, blob_store):
        blob_store.fail = True
        resp = test_client.post("/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Unexpected error uploading image"}

    def test_prediction_failure(self, test_client, inference, store):
        inference.status = "canceled"
        resp = test_client.post("/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Prediction error generating gif"}
        assert store.credits["user-1"] == 15

    def test_stored_content_type(self, test_client, blob_store):
        resp = test_client.post("/upload", files=_image(10), headers=AUTH, follow_redirects=False)
        key = resp.headers["location"].removeprefix("/p/")
        assert blob_store.objects[key][1] == "image/jpeg"


class TestApiUpload:
    def test_returns_key(self, test_client, store):
        resp = test_client.post("/api/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["key"] in store.records

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_wrong_method(self, test_client, method, events):
        resp = test_client.request(method, "/api/upload", headers=AUTH)
        assert resp.status_code == 405
        assert events == []


class TestGetJob:
    @pytest.fixture
    def sql_store(self, tmp_path):
        store = SqlKeyValueStore(f"sqlite:///{tmp_path / 'jobs.sqlite'}")
        main.app.dependency_overrides[get_store] = lambda: store
        yield store
        main.app.dependency_overrides.pop(get_store, None)

    def test_found(self, test_client, sql_store):
        sql_store.insert_record("abc", user_id="user-1")
        sql_store.set_prediction("abc", "pred-9", "starting")
        resp = test_client.get("/jobs/abc")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == "abc"
        assert data["status"] == "starting"
        assert data["prediction_id"] == "pred-9"

    def test_not_found(self, test_client, sql_store):
        resp = test_client.get("/jobs/missing")
        assert resp.status_code == 404


def test_healthz(test_client):
    resp = test_client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["storage"] == "local"


class TestUnhandledErrors:
    @pytest.fixture
    def broken_client(self):
        def broken_flow():
            raise RuntimeError("could not build collaborators")

        main.app.dependency_overrides[get_upload_flow] = broken_flow
        with TestClient(main.app, raise_server_exceptions=False) as client:
            yield client
        main.app.dependency_overrides.clear()

    def test_error_body_is_json(self, broken_client):
        resp = broken_client.post("/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Unexpected error"}

    def test_api_variant_error_body_is_json(self, broken_client):
        resp = broken_client.post("/api/upload", files=_image(10), headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Unexpected error"}
