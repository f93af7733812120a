"""Error taxonomy for the route-generation pipeline and its HTTP surface."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes returned in API error payloads."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    API_ERROR = "API_ERROR"


class AppError(Exception):
    """Error raised by route handlers and rendered by the global handler."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        user_message: str | None = None,
        status_code: int = 400,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.user_message = user_message or message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
        }


class UpstreamError(Exception):
    """A text-generation call failed permanently or ran out of retries."""


class TransientUpstreamError(Exception):
    """The provider is temporarily unavailable; the call may be retried."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ValueError):
    """A response could not be turned into structured data."""


class JobNotFoundError(LookupError):
    """No job is registered under the given id (never a 'still processing' state)."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id
