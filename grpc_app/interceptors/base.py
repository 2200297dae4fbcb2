from __future__ import annotations

import inspect
from typing import Any, AsyncIterator, Callable

import grpc


Behavior = Callable[..., Any]
UnaryWrapper = Callable[[Behavior], Behavior]
StreamWrapper = Callable[[Behavior], Callable[..., AsyncIterator[Any]]]


async def call_unary(behavior: Behavior, request: Any, context: grpc.aio.ServicerContext) -> Any:
    """Invoke a unary-response behavior whether it is sync or async."""
    result = behavior(request, context)
    if inspect.isawaitable(result):
        result = await result
    return result


async def iterate_stream(behavior: Behavior, request: Any, context: grpc.aio.ServicerContext) -> AsyncIterator[Any]:
    """Iterate a stream-response behavior.

    Async generators are relayed item by item; coroutine-style handlers that
    write through ``context.write`` are awaited and yield nothing here.
    """
    result = behavior(request, context)
    if inspect.isasyncgen(result):
        async for item in result:
            yield item
    elif inspect.isawaitable(result):
        await result
    elif result is not None:
        for item in result:
            yield item


def wrap_handler(
    handler: grpc.RpcMethodHandler,
    unary: UnaryWrapper,
    stream: StreamWrapper,
) -> grpc.RpcMethodHandler:
    """Rebuild `handler` with its behavior wrapped, keeping the RPC shape."""
    kwargs = dict(
        request_deserializer=handler.request_deserializer,
        response_serializer=handler.response_serializer,
    )
    if handler.unary_unary:
        return grpc.unary_unary_rpc_method_handler(unary(handler.unary_unary), **kwargs)
    if handler.unary_stream:
        return grpc.unary_stream_rpc_method_handler(stream(handler.unary_stream), **kwargs)
    if handler.stream_unary:
        return grpc.stream_unary_rpc_method_handler(unary(handler.stream_unary), **kwargs)
    if handler.stream_stream:
        return grpc.stream_stream_rpc_method_handler(stream(handler.stream_stream), **kwargs)
    return handler
