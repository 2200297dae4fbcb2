from __future__ import annotations

import uuid
import contextvars
from typing import Callable, Awaitable

import grpc
import structlog

from grpc_app.interceptors.base import call_unary, iterate_stream, wrap_handler


REQUEST_ID_META_KEY = "x-request-id"
_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("grpc_request_id", default=None)


def get_request_id() -> str | None:
    return _request_id_var.get()


class RequestIdInterceptor(grpc.aio.ServerInterceptor):
    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        def _begin(context: grpc.aio.ServicerContext) -> contextvars.Token:
            # Try to get request-id from incoming metadata
            md = dict(handler_call_details.invocation_metadata or [])
            request_id = md.get(REQUEST_ID_META_KEY) or str(uuid.uuid4())
            # Attach as trailing metadata so the client can correlate
            try:
                context.set_trailing_metadata(((REQUEST_ID_META_KEY, request_id),))
            except Exception:
                pass
            structlog.contextvars.bind_contextvars(request_id=request_id)
            return _request_id_var.set(request_id)

        def _end(token: contextvars.Token) -> None:
            structlog.contextvars.unbind_contextvars("request_id")
            try:
                _request_id_var.reset(token)
            except ValueError:
                # stream generator finalized outside the call's context
                pass

        def unary(behavior):
            async def _unary(request, context: grpc.aio.ServicerContext):
                token = _begin(context)
                try:
                    return await call_unary(behavior, request, context)
                finally:
                    _end(token)
            return _unary

        def stream(behavior):
            async def _stream(request, context: grpc.aio.ServicerContext):
                token = _begin(context)
                try:
                    async for item in iterate_stream(behavior, request, context):
                        yield item
                finally:
                    _end(token)
            return _stream

        return wrap_handler(handler, unary, stream)
