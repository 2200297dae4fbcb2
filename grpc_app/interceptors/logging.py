from __future__ import annotations

import time
from typing import Callable, Awaitable

import grpc

from core.logging_config import get_logger
from grpc_app.interceptors.base import call_unary, iterate_stream, wrap_handler
from grpc_app.interceptors.request_id import get_request_id
from grpc_app.interceptors.exceptions import is_mapped_error


logger = get_logger(__name__)


class LoggingInterceptor(grpc.aio.ServerInterceptor):
    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method

        def _started(context: grpc.aio.ServicerContext) -> float:
            peer = context.peer() if hasattr(context, "peer") else None
            logger.info("grpc_request", method=method, peer=peer, request_id=get_request_id())
            return time.perf_counter()

        def _failed(exc: BaseException) -> None:
            # Already mapped/aborted by exception interceptor; avoid duplicate error logs here
            if isinstance(exc, grpc.aio.AbortError) or is_mapped_error():
                return
            logger.error(
                "grpc_unhandled_error",
                method=method,
                error=str(exc),
                exc_info=True,
                request_id=get_request_id(),
            )

        def _done(start: float, **extra) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "grpc_request_done",
                method=method,
                elapsed_ms=round(elapsed_ms, 2),
                request_id=get_request_id(),
                **extra,
            )

        def unary(behavior):
            async def _unary(request, context: grpc.aio.ServicerContext):
                start = _started(context)
                try:
                    return await call_unary(behavior, request, context)
                except Exception as exc:
                    _failed(exc)
                    raise
                finally:
                    _done(start)
            return _unary

        def stream(behavior):
            async def _stream(request, context: grpc.aio.ServicerContext):
                start = _started(context)
                sent = 0
                try:
                    async for item in iterate_stream(behavior, request, context):
                        sent += 1
                        yield item
                except Exception as exc:
                    _failed(exc)
                    raise
                finally:
                    _done(start, messages=sent)
            return _stream

        return wrap_handler(handler, unary, stream)
