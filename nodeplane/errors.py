"""Error taxonomy for command dispatch.

Every error bubbles to the request boundary, where ``register_error_handlers``
turns it into a JSON response. Nothing in the services retries on its own.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

log = logging.getLogger(__name__)


class CommandError(Exception):
    status_code = 500
    detail = "Internal error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.detail)

    def body(self) -> dict:
        return {"detail": str(self)}


class NotFound(CommandError):
    status_code = 404
    detail = "Not found."


class NodeNotFound(NotFound):
    detail = "Node not found."


class Forbidden(CommandError):
    status_code = 403
    detail = "Access denied."

    def body(self) -> dict:
        # The reason stays in the logs.
        return {"detail": self.detail}


class AlreadyAcked(CommandError):
    status_code = 409
    detail = "Command already acknowledged with a different outcome."


class HostUnreachable(CommandError):
    status_code = 409
    detail = "No reachable host for node."


class _FieldError(CommandError):
    status_code = 422

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{self.detail}: {field}")

    def body(self) -> dict:
        return {"detail": str(self), "field": self.field}


class InvalidKindForScope(_FieldError):
    detail = "Command kind does not match scope"


class InvalidPayload(_FieldError):
    detail = "Invalid payload"


class StoreUnavailable(CommandError):
    status_code = 503
    detail = "Store unavailable, retry later."


class InternalError(CommandError):
    def body(self) -> dict:
        return {"detail": self.detail}


def _internal_error(request: Request, exc: Exception, what: str) -> JSONResponse:
    log.error(f"{request.method} {request.url.path}: {what}", exc_info=exc)
    error = InternalError()
    return JSONResponse(error.body(), status_code=error.status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CommandError)
    async def _command_error(request: Request, exc: CommandError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")
        else:
            log.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")
        headers = {"Retry-After": "1"} if isinstance(exc, StoreUnavailable) else None
        return JSONResponse(exc.body(), status_code=exc.status_code, headers=headers)

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        return _internal_error(request, exc, "unhandled database error")

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        return _internal_error(request, exc, f"unhandled {type(exc).__name__}")
