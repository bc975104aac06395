from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class ErrorCode:
    # Authentication (1000-1999)
    INVALID_CREDENTIALS = "AUTH_1001"
    TOKEN_EXPIRED = "AUTH_1002"
    TOKEN_INVALID = "AUTH_1003"
    ACCESS_DENIED = "AUTH_1004"

    # Resources (2000-2999)
    NOT_FOUND = "RES_2001"
    ALREADY_EXISTS = "RES_2002"
    VALIDATION_ERROR = "RES_2003"
    ALREADY_SUBMITTED = "RES_2004"

    # Uploads (3000-3999)
    FILE_TOO_LARGE = "UPL_3001"
    FILE_TYPE_NOT_ALLOWED = "UPL_3002"
    STORAGE_ERROR = "UPL_3003"

    # System (9000-9999)
    INTERNAL_ERROR = "SYS_9001"
    SERVICE_UNAVAILABLE = "SYS_9002"
    DATABASE_ERROR = "SYS_9003"


class AppException(HTTPException):
    def __init__(
            self,
            status_code: int,
            error_code: str,
            message: str,
            details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(status_code=status_code, detail=message)

        # 5xx are logged by the generic handler with a traceback
        if status_code < 500:
            logger.warning(f"AppException: {error_code} - {message} | Details: {details}")


def conflict(message: str, details: Optional[Dict[str, Any]] = None) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        error_code=ErrorCode.ALREADY_SUBMITTED,
        message=message,
        details=details,
    )


async def app_exception_handler(request: Request, exc: AppException):
    content = {"error": exc.message, "code": exc.error_code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    content = detail if isinstance(detail, dict) else {"error": detail}
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(content),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"error": "Invalid input data", "details": exc.errors()}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "code": ErrorCode.INTERNAL_ERROR},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
