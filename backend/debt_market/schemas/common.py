"""通用响应 Schema"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """统一响应外层结构"""

    success: bool
    data: Any | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def ok(data: Any = None) -> ApiResponse:
    return ApiResponse(success=True, data=data)


def fail(error: str, data: Any = None) -> ApiResponse:
    return ApiResponse(success=False, error=error, data=data)
