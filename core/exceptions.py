"""
管理 API 的全局异常处理器：把 Mock 引擎异常映射为统一错误响应
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import traceback
import uuid
from starlette import status as http_status
from starlette.exceptions import HTTPException as StarletteHTTPException

from .response import error_response
from shared.codes import ErrorCode
from core.logging_config import get_logger
from domain.common.exceptions import MockException


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def _error_code_to_http_status(code: int) -> int:
    """根据错误码映射HTTP状态码（默认400）。"""
    mapping = {
        ErrorCode.SCHEMA_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.DUPLICATE_SERVICE: http_status.HTTP_409_CONFLICT,

        ErrorCode.RULE_DOCUMENT_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.UNKNOWN_METHOD: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.AMBIGUOUS_METHOD: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.DUPLICATE_RULE: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.INVALID_RULE: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

        ErrorCode.NO_MATCH: http_status.HTTP_404_NOT_FOUND,
        ErrorCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    }
    try:
        return mapping.get(ErrorCode(code), http_status.HTTP_400_BAD_REQUEST)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(MockException)
    async def mock_exception_handler(request: Request, exc: MockException):
        """处理 Mock 引擎异常（如规则重载失败）"""
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            request_id=_request_id(request),
        )
        logger.warning("admin_mock_error", code=int(exc.code), error_type=exc.error_type, error=exc.message)
        return JSONResponse(
            status_code=_error_code_to_http_status(exc.code),
            content=response.model_dump(mode='json'),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        response = error_response(
            code=ErrorCode.RULE_DOCUMENT_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": errors},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    # 注册 Starlette 基类，未知路由抛出的 404 也走这里
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """处理HTTP异常"""
        if exc.status_code == http_status.HTTP_404_NOT_FOUND:
            code = ErrorCode.NOT_FOUND
        elif exc.status_code >= 500:
            code = ErrorCode.SYSTEM_ERROR
        else:
            code = ErrorCode.HTTP_ERROR
        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)

        # 开发环境返回详细错误信息
        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        response = error_response(
            code=ErrorCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
