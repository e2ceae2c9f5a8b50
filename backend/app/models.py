from datetime import datetime
from typing import Optional

from pydantic import BaseModel

TERMINAL_FAILURE_STATUSES = frozenset(["failed", "canceled"])


class Prediction(BaseModel):
    id: str
    status: str
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return bool(self.error) or self.status in TERMINAL_FAILURE_STATUSES


class UploadRecord(BaseModel):
    id: str
    status: str
    created_at: datetime
    user_id: Optional[str] = None
    prediction_id: Optional[str] = None


class UploadResponse(BaseModel):
    key: str
