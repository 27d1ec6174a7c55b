"""
Error mapper - turns exceptions into RFC 7807 problem documents.
"""

from http import HTTPStatus

import httpx
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from postgate.models import ProblemDetail
from postgate.services.errors import DEFAULT_TITLE, ServiceError

DEFAULT_MESSAGE = "API Error occurred. Please contact support or administrator."
PROBLEM_MEDIA_TYPE = "application/problem+json"


def _status_for(error: BaseException) -> int:
    if isinstance(error, ServiceError):
        if error.status_code is None:
            return HTTPStatus.INTERNAL_SERVER_ERROR
        try:
            return HTTPStatus(error.status_code).value
        except ValueError:
            logger.info(
                "Error Code from Exception could not be mapped to a valid "
                f"HttpStatus Code - {error.status_code}"
            )
            return HTTPStatus.INTERNAL_SERVER_ERROR
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    if isinstance(error, StarletteHTTPException):
        return error.status_code
    return HTTPStatus.INTERNAL_SERVER_ERROR


def _message_for(error: BaseException) -> str:
    if isinstance(error, StarletteHTTPException):
        message = str(error.detail) if error.detail is not None else ""
    else:
        message = str(error)
    return message if message.strip() else DEFAULT_MESSAGE


def to_problem(error: BaseException) -> ProblemDetail:
    """Build a problem document for any exception."""
    title = error.title if isinstance(error, ServiceError) and error.title else DEFAULT_TITLE
    return ProblemDetail(
        title=title,
        status=int(_status_for(error)),
        detail=_message_for(error),
    )


def problem_response(problem: ProblemDetail) -> JSONResponse:
    """Render a problem document, omitting null members."""
    logger.error(
        f"Problem Detail Error: Title: {problem.title}, "
        f"Detail: {problem.detail}, Status: {problem.status}"
    )
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
    )
