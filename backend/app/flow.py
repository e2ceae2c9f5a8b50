"""Upload orchestration: rate limit, authenticate, check credits, allocate a
key, dispatch the aging job and debit credits once it has been accepted.

Dispatch is sequential and fail-fast. The asset is written before the job
is submitted, so no job ever references an unwritten object. There is no
rollback: a failure after key allocation leaves the placeholder row, and a
failure after upload leaves the stored asset.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from .auth import Authenticator
from .db import KeyValueStore
from .errors import (
    AuthenticationError,
    InferenceSubmissionError,
    KeyAllocationError,
    KeyConflictError,
    QuotaExceededError,
    RateLimitError,
    UnexpectedError,
    UploadError,
    UploadFlowError,
    ValidationError,
)
from .inference import InferenceClient
from .models import Prediction
from .ratelimit import RateLimiter
from .storage import BlobStore

logger = logging.getLogger("agify-backend")

KEY_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
KEY_SIZE = 21


def generate_key(size: int = KEY_SIZE) -> str:
    """URL-safe random id (same alphabet and length as nanoid)."""
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(size))


@dataclass
class ImageUpload:
    data: bytes
    content_type: str
    filename: Optional[str] = None


class KeyAllocator:
    """Allocates a key by inserting its placeholder row; the store enforces uniqueness."""

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = 5,
        generate: Callable[[], str] = generate_key,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.generate = generate

    def allocate(self, user_id: Optional[str] = None) -> str:
        for attempt in range(1, self.max_attempts + 1):
            key = self.generate()
            try:
                self.store.insert_record(key, user_id=user_id)
            except KeyConflictError:
                logger.warning("Key collision on attempt %d/%d", attempt, self.max_attempts)
                continue
            return key
        raise KeyAllocationError()


class QuotaGate:
    def __init__(self, store: KeyValueStore, cost: int = 10):
        self.store = store
        self.cost = cost

    def check(self, user_id: str) -> int:
        balance = self.store.get_credits(user_id)
        if balance is None or balance < self.cost:
            raise QuotaExceededError()
        return balance

    def debit(self, user_id: str) -> Optional[int]:
        # The job is already running; a failed debit is logged, not surfaced
        try:
            return self.store.update_credits(user_id, -self.cost)
        except Exception:
            logger.exception("Failed to debit %d credits from user %s", self.cost, user_id)
            return None


class JobDispatcher:
    def __init__(
        self,
        blob_store: BlobStore,
        inference: InferenceClient,
        webhook_domain: Callable[[], str],
        provider: str = "replicate",
        cache_control: str = "3600",
    ):
        self.blob_store = blob_store
        self.inference = inference
        self.webhook_domain = webhook_domain
        self.provider = provider
        self.cache_control = cache_control

    def webhook_url(self, key: str) -> str:
        return f"{self.webhook_domain()}/api/webhooks/{self.provider}/{key}"

    def dispatch(self, key: str, data: bytes, content_type: str) -> Prediction:
        try:
            self.blob_store.upload(
                key,
                data,
                content_type=content_type,
                cache_control=self.cache_control,
                upsert=True,
            )
        except UploadError:
            raise
        except Exception as e:
            raise UploadError() from e

        try:
            prediction = self.inference.create_prediction(
                self.blob_store.public_url(key), self.webhook_url(key)
            )
        except InferenceSubmissionError:
            raise
        except Exception as e:
            raise InferenceSubmissionError() from e

        if prediction.failed:
            logger.warning(
                "Prediction %s for %s failed on creation: status=%s error=%s",
                prediction.id,
                key,
                prediction.status,
                prediction.error,
            )
            raise InferenceSubmissionError("Prediction error generating gif")
        logger.info("Submitted prediction %s for %s (%s)", prediction.id, key, prediction.status)
        return prediction


class UploadFlow:
    """The composed upload handler shared by the form and JSON endpoints."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        authenticator: Authenticator,
        store: KeyValueStore,
        dispatcher: JobDispatcher,
        cost: int = 10,
        max_key_attempts: int = 5,
        bucket: str = "upload",
    ):
        self.rate_limiter = rate_limiter
        self.authenticator = authenticator
        self.store = store
        self.dispatcher = dispatcher
        self.quota = QuotaGate(store, cost)
        self.allocator = KeyAllocator(store, max_key_attempts)
        self.bucket = bucket

    def run(self, token: Optional[str], image: Optional[ImageUpload]) -> str:
        try:
            return self._run(token, image)
        except UploadFlowError:
            raise
        except Exception as e:
            logger.exception("Unexpected error handling upload")
            raise UnexpectedError() from e

    def _run(self, token: Optional[str], image: Optional[ImageUpload]) -> str:
        if not self.rate_limiter.limit(self.bucket):
            raise RateLimitError()

        user_id = self.authenticator.get_user_id(token)
        if not user_id:
            raise AuthenticationError()

        self.quota.check(user_id)

        if image is None or not image.data:
            raise ValidationError()

        key = self.allocator.allocate(user_id)
        prediction = self.dispatcher.dispatch(key, image.data, image.content_type)
        try:
            self.store.set_prediction(key, prediction.id, prediction.status)
        except Exception:
            logger.warning("Could not record prediction %s on %s", prediction.id, key, exc_info=True)

        self.quota.debit(user_id)
        return key
