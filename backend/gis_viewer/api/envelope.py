"""Response envelope shared by every JSON route.

Every JSON response has the shape
``{"success": bool, "data": T | None, "error": {"code", "message"} | None}``.
"""

from __future__ import annotations

from typing import Any

from typing_extensions import TypedDict


class ApiError(TypedDict):
    code: str
    message: str


class ApiResponse(TypedDict):
    success: bool
    data: Any
    error: ApiError | None


def success(data: Any) -> ApiResponse:
    return ApiResponse(success=True, data=data, error=None)


def failure(code: str, message: str) -> ApiResponse:
    return ApiResponse(
        success=False,
        data=None,
        error=ApiError(code=code, message=message),
    )
