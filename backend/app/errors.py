class UploadFlowError(Exception):
    """Terminal failure of an upload request, carrying its HTTP status."""

    status_code = 500
    message = "Unexpected error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthenticationError(UploadFlowError):
    status_code = 401
    message = "Unauthorized"


class QuotaExceededError(UploadFlowError):
    status_code = 402
    message = "Not enough credits, please buy more"


class ValidationError(UploadFlowError):
    status_code = 400
    message = "Missing image"


class RateLimitError(UploadFlowError):
    status_code = 429
    message = "Don't DDoS me pls 🥺"


class UploadError(UploadFlowError):
    status_code = 400
    message = "Unexpected error uploading image"


class InferenceSubmissionError(UploadFlowError):
    status_code = 500
    message = "Unexpected error generating gif"


class UnexpectedError(UploadFlowError):
    status_code = 500
    message = "Unexpected error"


class KeyAllocationError(UnexpectedError):
    message = "Could not allocate a unique key"


class KeyConflictError(Exception):
    """Raised by a store when a record with the same key already exists."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key already exists: {key}")
