"""
Shared codes used across layers (Domain/Core/gRPC/API).

This package exposes `ErrorCode` (mock engine error taxonomy) and
`RpcStatus` (canonical gRPC status codes) at `shared.codes`, so the domain
layer can describe call outcomes without importing grpc.
"""
from enum import IntEnum


class ErrorCode(IntEnum):
    """Mock engine error codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Schema errors (1xxxx)
    SCHEMA_ERROR = 10000
    DUPLICATE_SERVICE = 10001

    # Rule errors (2xxxx)
    RULE_DOCUMENT_ERROR = 20000
    UNKNOWN_METHOD = 20001
    AMBIGUOUS_METHOD = 20002
    DUPLICATE_RULE = 20003
    INVALID_RULE = 20004

    # Call errors (3xxxx)
    NO_MATCH = 30000

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    # 管理 API 的 HTTP 层错误（未知路由、方法不允许等）
    HTTP_ERROR = 40001
    NOT_FOUND = 40004


class RpcStatus(IntEnum):
    """Canonical gRPC status codes, numbered as on the wire."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @classmethod
    def parse(cls, value: "int | str | RpcStatus") -> "RpcStatus":
        """Accept a status name (any case), its number, or a numeric string."""
        if isinstance(value, RpcStatus):
            return value
        if isinstance(value, bool):
            raise ValueError(f"invalid status code: {value!r}")
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"invalid status code: {value!r}") from None


__all__ = ["ErrorCode", "RpcStatus"]
