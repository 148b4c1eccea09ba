from typing import Any

from fastapi import HTTPException


class ApiError(HTTPException):
    """HTTPException carrying a client-facing message plus extra JSON fields."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=type(self).status_code, detail=message, headers=headers)
        self.extra = extra or {}


class ValidationError(ApiError):
    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message, extra={"fields": list(fields)} if fields else None)
        self.fields = list(fields or [])


class UnauthorizedError(ApiError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFoundError(ApiError):
    status_code = 404

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, extra={"message": message})


class RateLimitedError(ApiError):
    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many requests, please try again later.") -> None:
        super().__init__(message, headers={"Retry-After": str(int(retry_after))})
        self.retry_after = int(retry_after)


class StoreError(ApiError):
    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message, extra={"details": details} if details else None)


class UpstreamError(ApiError):
    status_code = 502

    def __init__(self, message: str = "Invalid response from upstream provider", details: str | None = None) -> None:
        super().__init__(message, extra={"details": details} if details else None)


def error_body(exc: HTTPException, include_details: bool) -> dict[str, Any]:
    body: dict[str, Any] = {"error": exc.detail}
    for key, value in getattr(exc, "extra", {}).items():
        if key == "details" and not include_details:
            continue
        body[key] = value
    return body
