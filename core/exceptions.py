"""
全局异常处理器：把异常统一转换为 Response 信封

业务异常按种类映射 HTTP 状态码；数据库唯一约束冲突视为 409；
其他未捕获异常记录完整堆栈后返回 500。
"""
import traceback
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette import status as http_status
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging_config import get_logger
from domain.common.exceptions import (
    AuthenticationException,
    BusinessException,
    ConfigurationException,
    DomainValidationException,
    ExternalServiceException,
    ResourceNotFoundException,
    StateConflictException,
)
from shared.codes import BusinessCode

from .response import error_response

logger = get_logger(__name__)

# 按异常族映射 HTTP 状态码，顺序即匹配优先级
_STATUS_BY_FAMILY = (
    (ResourceNotFoundException, http_status.HTTP_404_NOT_FOUND),
    (DomainValidationException, http_status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StateConflictException, http_status.HTTP_409_CONFLICT),
    (AuthenticationException, http_status.HTTP_401_UNAUTHORIZED),
    (ConfigurationException, http_status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ExternalServiceException, http_status.HTTP_502_BAD_GATEWAY),
)

_CODE_BY_HTTP_STATUS = {
    401: BusinessCode.UNAUTHORIZED,
    403: BusinessCode.FORBIDDEN,
    404: BusinessCode.NOT_FOUND,
    429: BusinessCode.TOO_MANY_REQUESTS,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_exception_status(exc: BusinessException) -> int:
    for family, status_code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return status_code
    return http_status.HTTP_400_BAD_REQUEST


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or uuid.uuid4().hex


def _envelope(
    request: Request,
    status_code: int,
    *,
    code: int,
    message: str,
    error_type: str,
    details: Optional[dict] = None,
    field: Optional[str] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    response = error_response(
        code=code,
        message=message,
        error_type=error_type,
            details=details,
        field=field,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"), headers=headers)


def register_exception_handlers(app: FastAPI):
    """注册全局异常处理器"""

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        status_code = business_exception_status(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "business_exception",
            error_type=exc.error_type,
            code=int(exc.code),
            status_code=status_code,
            error=exc.message,
        )
        return _envelope(
            request,
            status_code,
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=jsonable_encoder(exc.details) if exc.details else None,
            field=exc.field,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        first_error = errors[0] if errors else {}
        return _envelope(
            request,
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": errors},
            field=".".join(str(loc) for loc in first_error.get("loc", [])[1:]),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        # 并发创建同一唯一键（优惠码、订单号等）
        logger.warning("integrity_conflict", error=str(exc.orig))
        return _envelope(
            request,
            http_status.HTTP_409_CONFLICT,
            code=BusinessCode.STATE_CONFLICT,
            message="Resource already exists or was modified concurrently",
            error_type="IntegrityConflict",
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _envelope(
            request,
            exc.status_code,
            code=_CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if app.debug else None
        return _envelope(
            request,
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
        )
