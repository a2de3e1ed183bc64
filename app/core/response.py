# app/core/response.py
"""The ``{status, msg, data}`` envelope every endpoint returns."""
import traceback
from typing import Any, Dict, Literal, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import DomainError


class ErrorDetail(BaseModel):
    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ResponseModel(BaseModel):
    status: Literal["success", "error"]
    msg: str
    data: Optional[Any] = None


class ErrorResponseModel(ResponseModel):
    status: Literal["error"] = "error"
    error_code: Optional[str] = None
    details: Optional[list[ErrorDetail]] = None
    debug_info: Optional[Dict[str, Any]] = None


def _envelope(model: BaseModel, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(exclude_none=True))


def success_response(msg: str = "OK", data: Any = None, status_code: int = 200) -> JSONResponse:
    """Pydantic models, UUIDs, enums and datetimes in ``data`` are JSON-encoded."""
    return _envelope(ResponseModel(status="success", msg=msg, data=jsonable_encoder(data)), status_code)


def error_response(
    msg: str,
    data: Any = None,
    status_code: int = 400,
    error_code: Optional[str] = None,
    details: Optional[list[ErrorDetail]] = None,
) -> JSONResponse:
    if not (error_code or details):
        return _envelope(ResponseModel(status="error", msg=msg, data=jsonable_encoder(data)), status_code)

    debug_info = None
    if settings.DEBUG and status_code >= 500:
        debug_info = {"traceback": traceback.format_exc(), "environment": settings.ENVIRONMENT}
    body = ErrorResponseModel(
        msg=msg,
        data=jsonable_encoder(data),
        error_code=error_code,
        details=details,
        debug_info=debug_info,
    )
    return _envelope(body, status_code)


def domain_error_response(exc: DomainError) -> JSONResponse:
    return error_response(exc.message, data=exc.data, status_code=exc.status_code, error_code=exc.error_code)


def validation_error_response(errors: list[Dict[str, Any]], status_code: int = 422) -> JSONResponse:
    """Flatten FastAPI's request validation errors into ``details``."""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        details.append(ErrorDetail(
            field=".".join(loc) or None,
            message=err.get("msg", "Validation error"),
            code=err.get("type", "VALIDATION_ERROR"),
        ))
    return error_response(
        "Invalid request parameters",
        details=details,
        status_code=status_code,
        error_code="VALIDATION_ERROR",
    )
