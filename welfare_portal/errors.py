from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class WelfareError(Exception):
    """Base class for failures a service reports to its caller.

    Each subclass maps to one stable HTTP status code; the message is safe to
    show to the user.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Internal Server Error'

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(WelfareError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Unauthorized'


class Forbidden(WelfareError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Forbidden'


class NotFound(WelfareError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class InvalidInput(WelfareError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid input'


class Conflict(WelfareError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Conflict'


class Internal(WelfareError):
    pass


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return 'Invalid input'
    first = errors[0]
    location = '.'.join(str(part) for part in first.get('loc', ()) if part not in {'body', 'query', 'path'})
    message = first.get('msg', 'Invalid value')
    return f'{location}: {message}' if location else message


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WelfareError)
    async def welfare_error_handler(request: Request, exc: WelfareError):
        if isinstance(exc, Internal):
            logger.error('Internal error on %s %s: %s', request.method, request.url.path, exc.message)
        return JSONResponse({'error': exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({'error': _validation_message(exc)}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception('Database error on %s %s', request.method, request.url.path, exc_info=exc)
        return JSONResponse({'error': 'Internal Server Error'}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
