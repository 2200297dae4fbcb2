from __future__ import annotations

from typing import Callable, Awaitable
import contextvars

import grpc

from core.logging_config import get_logger
from grpc_app.interceptors.base import call_unary, iterate_stream, wrap_handler
from grpc_app.interceptors.request_id import get_request_id
from domain.common.exceptions import MockException
from shared.codes import ErrorCode


logger = get_logger(__name__)

# Mark that the current request has been mapped to a gRPC status
_mapped_error: contextvars.ContextVar[bool] = contextvars.ContextVar("grpc_mapped_error", default=False)

def set_mapped_error() -> None:
    try:
        _mapped_error.set(True)
    except Exception:
        pass

def is_mapped_error() -> bool:
    try:
        return bool(_mapped_error.get())
    except Exception:
        return False


def _error_code_to_grpc_status(code: int) -> grpc.StatusCode:
    try:
        ec = ErrorCode(code)
    except Exception:
        return grpc.StatusCode.INTERNAL

    mapping = {
        ErrorCode.SCHEMA_ERROR: grpc.StatusCode.FAILED_PRECONDITION,
        ErrorCode.DUPLICATE_SERVICE: grpc.StatusCode.ALREADY_EXISTS,

        ErrorCode.RULE_DOCUMENT_ERROR: grpc.StatusCode.FAILED_PRECONDITION,
        ErrorCode.UNKNOWN_METHOD: grpc.StatusCode.UNIMPLEMENTED,
        ErrorCode.AMBIGUOUS_METHOD: grpc.StatusCode.UNIMPLEMENTED,
        ErrorCode.DUPLICATE_RULE: grpc.StatusCode.FAILED_PRECONDITION,
        ErrorCode.INVALID_RULE: grpc.StatusCode.FAILED_PRECONDITION,

        ErrorCode.NO_MATCH: grpc.StatusCode.UNIMPLEMENTED,
        ErrorCode.SYSTEM_ERROR: grpc.StatusCode.INTERNAL,
    }

    return mapping.get(ec, grpc.StatusCode.INTERNAL)


class ExceptionMappingInterceptor(grpc.aio.ServerInterceptor):
    """Turns exceptions escaping a handler into a gRPC status for that call only."""

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method

        async def _abort(exc: Exception, context: grpc.aio.ServicerContext) -> None:
            if isinstance(exc, MockException):
                status = _error_code_to_grpc_status(exc.code)
                code, error_type, message = exc.code, exc.error_type, exc.message
            else:
                status = grpc.StatusCode.INTERNAL
                code, error_type, message = ErrorCode.SYSTEM_ERROR, "SystemError", str(exc)
            try:
                context.set_trailing_metadata((
                    ("x-error-code", str(int(code))),
                    ("x-error-type", error_type),
                ))
            except Exception:
                pass
            set_mapped_error()
            logger.error(
                "grpc_mapped_error",
                method=method,
                code=str(int(code)),
                status=str(status),
                message=message,
                request_id=get_request_id(),
                exc_info=not isinstance(exc, MockException),
            )
            await context.abort(status, message if isinstance(exc, MockException) else "Internal mock server error")

        def unary(behavior):
            async def _unary(request, context: grpc.aio.ServicerContext):
                try:
                    return await call_unary(behavior, request, context)
                except grpc.aio.AbortError:
                    raise
                except Exception as exc:
                    await _abort(exc, context)
            return _unary

        def stream(behavior):
            async def _stream(request, context: grpc.aio.ServicerContext):
                try:
                    async for item in iterate_stream(behavior, request, context):
                        yield item
                except grpc.aio.AbortError:
                    raise
                except Exception as exc:
                    await _abort(exc, context)
            return _stream

        return wrap_handler(handler, unary, stream)
