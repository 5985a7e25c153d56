"""
Domain error taxonomy shared by every service.

Services raise these instead of HTTPException so the same rules hold when the
code runs outside a request (the auction sweep, the CLI). The FastAPI handlers
registered by register_exception_handlers() turn them into JSON responses.
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = {key: value for key, value in detail.items() if value is not None}

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(DomainError):
    """Bad input shape or a business rule violation."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, field: Optional[str] = None, rule: Optional[str] = None, **detail: Any):
        super().__init__(message, field=field, rule=rule, **detail)
        self.field = field
        self.rule = rule


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class GatewayError(DomainError):
    """The payment provider failed. Whatever was persisted before the call stays."""
    status_code = status.HTTP_502_BAD_GATEWAY


class StorageError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, **exc.detail)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
