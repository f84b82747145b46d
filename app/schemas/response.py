from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapped around every product endpoint response."""
    success: bool
    message: str
    data: Optional[T] = None
    timestamp: datetime = Field(default_factory=_now)
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any, message: str, status_code: int = 200) -> "ApiResponse":
        return cls(success=True, message=message, data=data, status_code=status_code)

    @classmethod
    def error(cls, message: str, status_code: int = 500) -> "ApiResponse":
        return cls(success=False, message=message, status_code=status_code)
