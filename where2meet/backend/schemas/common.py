"""Shared response envelope and input helpers."""
import re
from pydantic import BaseModel
from typing import Any, Optional


TAG_PATTERN = re.compile(r"<[^>]*>")


def sanitize_input(value: Optional[str]) -> Optional[str]:
    """Trim whitespace and strip HTML tags."""
    if not isinstance(value, str):
        return value
    return TAG_PATTERN.sub("", value).strip()


class ApiResponse(BaseModel):
    """Discriminated success/error envelope returned by every endpoint."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    kind: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Any] = None


def ok(data: Any) -> ApiResponse:
    """Wrap a payload in a success envelope."""
    return ApiResponse(success=True, data=data)
