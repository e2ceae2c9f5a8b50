"""Shared pytest fixtures: in-memory collaborators that record every call."""

import os
import tempfile
from typing import Dict, List, Optional

import pytest

# Configuration is read at import time; point it at a scratch directory first
os.environ.setdefault("STATIC_DIR", tempfile.mkdtemp(prefix="agify-tests-"))
os.environ.setdefault("APP_ENV", "production")
os.environ.setdefault("PUBLIC_DOMAIN", "agify.example.com")

from app.errors import KeyConflictError, UploadError  # noqa: E402
from app.flow import ImageUpload, JobDispatcher, UploadFlow  # noqa: E402
from app.models import Prediction  # noqa: E402


class FakeStore:
    def __init__(self, events: List[tuple], credits: Optional[Dict[str, int]] = None):
        self.events = events
        self.credits = dict(credits or {})
        self.records: Dict[str, dict] = {}
        self.conflicts_remaining = 0

    def insert_record(self, key, user_id=None):
        self.events.append(("insert_record", key))
        if self.conflicts_remaining or key in self.records:
            if self.conflicts_remaining:
                self.conflicts_remaining -= 1
            raise KeyConflictError(key)
        self.records[key] = {"user_id": user_id, "status": "pending", "prediction_id": None}

    def get_record(self, key):
        return self.records.get(key)

    def set_prediction(self, key, prediction_id, status):
        self.events.append(("set_prediction", key))
        self.records[key].update(prediction_id=prediction_id, status=status)

    def get_credits(self, user_id):
        self.events.append(("get_credits", user_id))
        return self.credits.get(user_id)

    def update_credits(self, user_id, delta):
        self.events.append(("update_credits", user_id, delta))
        self.credits[user_id] = self.credits[user_id] + delta
        return self.credits[user_id]


class FakeBlobStore:
    def __init__(self, events: List[tuple]):
        self.events = events
        self.objects: Dict[str, tuple] = {}
        self.fail = False

    def upload(self, key, data, content_type, cache_control="3600", upsert=True):
        self.events.append(("upload", key))
        if self.fail:
            raise UploadError()
        self.objects[key] = (data, content_type, cache_control)
        return f"memory://{key}"

    def public_url(self, key):
        return f"https://storage.example.com/data/{key}"


class FakeInference:
    def __init__(self, events: List[tuple]):
        self.events = events
        self.status = "starting"
        self.error = None
        self.raises: Optional[Exception] = None
        self.calls: List[tuple] = []

    def create_prediction(self, image_url, webhook_url):
        self.events.append(("create_prediction", image_url))
        self.calls.append((image_url, webhook_url))
        if self.raises:
            raise self.raises
        return Prediction(id=f"pred-{len(self.calls)}", status=self.status, error=self.error)


class FakeRateLimiter:
    def __init__(self, events: List[tuple]):
        self.events = events
        self.allow = True

    def limit(self, identifier):
        self.events.append(("limit", identifier))
        return self.allow


class FakeAuthenticator:
    def __init__(self, events: List[tuple], tokens: Optional[Dict[str, str]] = None):
        self.events = events
        self.tokens = dict(tokens or {})

    def get_user_id(self, token):
        self.events.append(("get_user_id", token))
        return self.tokens.get(token)


@pytest.fixture
def events() -> List[tuple]:
    return []


@pytest.fixture
def store(events) -> FakeStore:
    return FakeStore(events, credits={"user-1": 15, "poor-user": 5})


@pytest.fixture
def blob_store(events) -> FakeBlobStore:
    return FakeBlobStore(events)


@pytest.fixture
def inference(events) -> FakeInference:
    return FakeInference(events)


@pytest.fixture
def rate_limiter(events) -> FakeRateLimiter:
    return FakeRateLimiter(events)


@pytest.fixture
def authenticator(events) -> FakeAuthenticator:
    return FakeAuthenticator(events, tokens={"good-token": "user-1", "poor-token": "poor-user"})


@pytest.fixture
def dispatcher(blob_store, inference) -> JobDispatcher:
    return JobDispatcher(
        blob_store=blob_store,
        inference=inference,
        webhook_domain=lambda: "https://agify.example.com",
    )


@pytest.fixture
def flow(rate_limiter, authenticator, store, dispatcher) -> UploadFlow:
    return UploadFlow(
        rate_limiter=rate_limiter,
        authenticator=authenticator,
        store=store,
        dispatcher=dispatcher,
        cost=10,
        max_key_attempts=5,
    )


@pytest.fixture
def jpeg() -> ImageUpload:
    # 2MB payload starting with a JPEG marker
    return ImageUpload(data=b"\xff\xd8\xff" + b"\x00" * (2 * 1024 * 1024), content_type="image/jpeg")
