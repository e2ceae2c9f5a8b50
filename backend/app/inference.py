import logging
from typing import Protocol

import httpx

from .errors import InferenceSubmissionError
from .models import Prediction

logger = logging.getLogger("agify-backend")


class InferenceClient(Protocol):
    def create_prediction(self, image_url: str, webhook_url: str) -> Prediction: ...


class ReplicateClient:
    """Submits image-aging predictions to the Replicate HTTP API."""

    def __init__(
        self,
        api_token: str,
        version: str,
        target_age: str = "default",
        base_url: str = "https://api.replicate.com/v1",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_token = api_token
        self.version = version
        self.target_age = target_age
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def create_prediction(self, image_url: str, webhook_url: str) -> Prediction:
        payload = {
            "version": self.version,
            "input": {"image": image_url, "target_age": self.target_age},
            "webhook": webhook_url,
            "webhook_events_filter": ["completed"],
        }
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.post(f"{self.base_url}/predictions", json=payload, headers=headers)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Replicate rejected prediction %s: %s", e.response.status_code, e.response.text[:500]
            )
            raise InferenceSubmissionError() from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Replicate request failed: %s", e)
            raise InferenceSubmissionError() from e
        return Prediction(
            id=str(data.get("id") or ""),
            status=data.get("status") or "starting",
            error=data.get("error"),
        )
