"""
Exception handlers translating errors into the response envelope:

    {"success": false, "message": <localized>, "error": <detail, non-production only>}
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tour_api.core.config import get_settings
from tour_api.core.exceptions import DomainError
from tour_api.core.logging import get_logger
from tour_api.core.messages import resolve_language, translate
from tour_api.schemas.common import ErrorResponse

logger = get_logger(__name__)
settings = get_settings()


def error_response(request: Request, status_code: int, message_key: str, error=None, **params) -> JSONResponse:
    lang = resolve_language(request.headers.get("accept-language"))
    body = ErrorResponse(
        message=translate(message_key, lang, **params),
        error=None if settings.is_production else error,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "domain_error",
        error_type=type(exc).__name__,
        message_key=exc.message_key,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return error_response(
        request,
        exc.status_code,
        exc.message_key,
        error=exc.detail or exc.message_key,
        **exc.params,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    logger.info("request_validation_failed", errors=errors)
    return error_response(request, 400, "validation_failed", error=errors)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        key = "route_not_found"
    elif exc.status_code == 401:
        key = "not_authenticated"
    elif exc.status_code == 403:
        key = "forbidden"
    elif exc.status_code < 500:
        key = "validation_failed"
    else:
        key = "internal_error"
    response = error_response(request, exc.status_code, key, error=exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error=str(exc))
    return error_response(request, 500, "internal_error", error=str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
