"""Centralized exception handlers for FastAPI."""

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from bus_booking.exceptions import DomainError


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.exception(f'Domain error on {request.url.path}: {exc.message}')
    else:
        logger.warning(f'Domain error on {request.url.path}: {exc.message}')
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message, **exc.extra})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f'Invalid request on {request.url.path}: {exc.errors()}')
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': jsonable_encoder(exc.errors())},
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f'Unhandled exception on {request.url.path}: {exc}')
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'detail': 'Internal server error'},
    )


EXCEPTION_HANDLERS = {
    DomainError: domain_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
