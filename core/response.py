"""
管理 API 的统一响应信封

成功：{"code": 0, "message": "OK", "data": ...}
失败：{"code": <ErrorCode>, "message": ..., "error": {"type", "reason", "details", "request_id", "timestamp"}}
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_serializer

from shared.codes import ErrorCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    # 异常类名，如 RuleDocumentError
    type: str
    # ErrorCode 名称，如 RULE_DOCUMENT_ERROR
    reason: str
    details: Optional[dict] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def _utc_z(self, ts: datetime) -> str:
        return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ApiResponse(BaseModel, Generic[T]):
    code: int = int(ErrorCode.SUCCESS)
    message: str = "OK"
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(data: Any = None, message: str = "OK") -> ApiResponse:
    return ApiResponse(data=data, message=message)


def error_response(
    code: int,
    message: str,
    error_type: str = "MockError",
    details: Optional[dict] = None,
    request_id: Optional[str] = None,
) -> ApiResponse:
    """构造错误信封；未登记的 code 以数字作为 reason。"""
    try:
        reason = ErrorCode(code).name
    except ValueError:
        reason = str(code)
    return ApiResponse(
        code=code,
        message=message,
        error=ErrorDetail(type=error_type, reason=reason, details=details, request_id=request_id),
    )
