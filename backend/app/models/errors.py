"""Error envelope models returned by the HTTP layer."""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
    API_ERROR = "API_ERROR"


class AppError(BaseModel):
    """Error payload shown to API clients."""

    code: ErrorCode = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Technical error message")
    user_message: str = Field(..., description="Message safe to show in the UI")
