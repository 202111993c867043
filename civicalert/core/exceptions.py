"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

class CivicAlertException(HTTPException):
    """Base exception class for CivicAlert application"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

class ValidationError(CivicAlertException):
    """400 Bad Request - malformed request body"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )

class AuthError(CivicAlertException):
    """401 Unauthorized"""

    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )

class NotFoundError(CivicAlertException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )

class UpstreamQueryError(CivicAlertException):
    """500 - storage unavailable while loading dispatch inputs"""

    def __init__(
        self,
        detail: str = "Upstream query failed",
        error_code: str = "UPSTREAM_QUERY_FAILED"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )

# Delivery outcomes. These never reach the HTTP layer: the dispatcher
# aggregates them into the response's ``errors`` list.
class DeliveryError(Exception):
    """A single push delivery failed"""

    permanent = False

    def __init__(
        self,
        message: str,
        subscription_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.subscription_id = subscription_id
        self.user_id = user_id
        self.status_code = status_code

class TransientDeliveryError(DeliveryError):
    """Timeout, server error or network failure; subscription is kept"""

class PermanentDeliveryError(DeliveryError):
    """The endpoint reports the subscription no longer exists"""

    permanent = True

class PayloadTooLargeError(ValueError):
    """Encoded notification exceeds the push transport ceiling"""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Notification payload is {size} bytes, limit is {limit}")
        self.size = size
        self.limit = limit

# Handlers
async def civicalert_exception_handler(request: Request, exc: CivicAlertException) -> JSONResponse:
    """Render application errors as {"error", "code"}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "code": exc.error_code},
        headers=exc.headers,
    )

async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are reported as 400 rather than FastAPI's 422"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request body",
            "code": "VALIDATION_ERROR",
            "details": [
                {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        },
    )
