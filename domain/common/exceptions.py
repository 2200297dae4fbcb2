"""领域层异常定义，供领域与基础设施使用。

核心（core）层与 gRPC 传输层仅负责把这些异常映射为 HTTP / gRPC 状态，
领域层不反向依赖它们。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import ErrorCode


class MockException(Exception):
    """Mock 引擎异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "MockError",
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class SchemaError(MockException):
    """A schema source is missing, malformed or references unresolvable symbols."""

    def __init__(self, message: str, *, source: Optional[str] = None):
        super().__init__(
            code=ErrorCode.SCHEMA_ERROR,
            message=message,
            error_type="SchemaError",
            details={"source": source} if source else None,
        )


class DuplicateServiceError(MockException):
    def __init__(self, service: str):
        super().__init__(
            code=ErrorCode.DUPLICATE_SERVICE,
            message=f"Service {service} is already registered",
            error_type="DuplicateService",
            details={"service": service},
        )


class RuleDocumentError(MockException):
    """The rule document cannot be read or does not follow the rule schema."""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=ErrorCode.RULE_DOCUMENT_ERROR,
            message=message,
            error_type="RuleDocumentError",
            details=details,
        )


class UnknownMethodError(MockException):
    def __init__(self, method: str, message: Optional[str] = None, *, code: int = ErrorCode.UNKNOWN_METHOD):
        super().__init__(
            code=code,
            message=message or f"Method {method} is not registered",
            error_type="UnknownMethod",
            details={"method": method},
        )


class AmbiguousMethodError(UnknownMethodError):
    def __init__(self, method: str, candidates: list[str]):
        super().__init__(
            method,
            f"Method name {method} is ambiguous, qualify it with its service: {', '.join(candidates)}",
            code=ErrorCode.AMBIGUOUS_METHOD,
        )
        self.error_type = "AmbiguousMethod"
        self.details = {"method": method, "candidates": candidates}


class DuplicateRuleError(MockException):
    def __init__(self, method: str, index: int):
        super().__init__(
            code=ErrorCode.DUPLICATE_RULE,
            message=f"Method {method} already has a fallback rule (duplicate at rule #{index})",
            error_type="DuplicateRule",
            details={"method": method, "index": index},
        )


class InvalidRuleError(MockException):
    """A rule is well formed but cannot be served for its method."""

    def __init__(self, message: str, *, method: Optional[str] = None, index: Optional[int] = None):
        details = {}
        if method is not None:
            details["method"] = method
        if index is not None:
            details["index"] = index
        super().__init__(
            code=ErrorCode.INVALID_RULE,
            message=message,
            error_type="InvalidRule",
            details=details or None,
        )
