"""
Domain error taxonomy shared by the scheduling services.

Services raise these; ``register_error_handlers`` turns them into JSON
responses of the form ``{"code": ..., "detail": ...}``.
"""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(SchedulingError):
    status_code = 400
    code = "invalid_input"


class NotFound(SchedulingError):
    status_code = 404
    code = "not_found"


class Forbidden(SchedulingError):
    status_code = 403
    code = "forbidden"


class Conflict(SchedulingError):
    status_code = 409
    code = "conflict"


class NotConfigured(SchedulingError):
    status_code = 404
    code = "not_configured"


def register_error_handlers(app: FastAPI):
    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.code} - {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "detail": exc.detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"code": "server_error", "detail": "An internal server error occurred."},
        )
