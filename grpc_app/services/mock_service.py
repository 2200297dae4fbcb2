"""Transport adapter: exposes every registered method as a live RPC.

No generated stubs are involved: each service gets a generic handler whose
methods deserialize into dynamic message classes, ask the application
service for response events and write them back in order.
"""
from __future__ import annotations

from contextlib import aclosing
from typing import AsyncIterator, Literal

import grpc
from google.protobuf.message import Message

from application.services.mock_service import MockApplicationService
from application.services.synthesizer import ResponseEvent
from domain.rules.entity import ErrorAction
from domain.rules.matcher import NO_MATCH, match
from domain.schema.entity import MethodDescriptor, StreamingMode
from domain.schema.registry import Registry
from grpc_app.mappers.status import to_grpc_status
from infrastructure.protos.codec import MessageCodec


StreamMatch = Literal["assembled", "per_message"]


class MockServicer:
    def __init__(
        self,
        registry: Registry,
        codec: MessageCodec,
        service: MockApplicationService,
        *,
        stream_match: StreamMatch = "assembled",
    ) -> None:
        self.registry = registry
        self.codec = codec
        self.service = service
        self.stream_match = stream_match

    def generic_handlers(self) -> list[grpc.GenericRpcHandler]:
        return [
            grpc.method_handlers_generic_handler(
                svc.full_name,
                {m.name: self.method_handler(m) for m in svc.methods},
            )
            for svc in self.registry
        ]

    def method_handler(self, method: MethodDescriptor) -> grpc.RpcMethodHandler:
        kwargs = dict(
            request_deserializer=self.codec.deserializer(method.request_type),
            response_serializer=MessageCodec.serializer,
        )
        if method.mode is StreamingMode.UNARY_UNARY:
            return grpc.unary_unary_rpc_method_handler(self._unary_unary(method), **kwargs)
        if method.mode is StreamingMode.UNARY_STREAM:
            return grpc.unary_stream_rpc_method_handler(self._unary_stream(method), **kwargs)
        if method.mode is StreamingMode.STREAM_UNARY:
            return grpc.stream_unary_rpc_method_handler(self._stream_unary(method), **kwargs)
        return grpc.stream_stream_rpc_method_handler(self._stream_stream(method), **kwargs)

    # -- behaviors -------------------------------------------------------

    def _unary_unary(self, method: MethodDescriptor):
        async def handle(request: Message, context: grpc.aio.ServicerContext) -> Message:
            async with self.service.call(method) as store:
                events = self.service.respond(method, self.codec.to_dict(request), store)
                return await self._reply(method, events, context)
        return handle

    def _unary_stream(self, method: MethodDescriptor):
        async def handle(request: Message, context: grpc.aio.ServicerContext) -> AsyncIterator[Message]:
            async with self.service.call(method) as store:
                events = self.service.respond(method, self.codec.to_dict(request), store)
                async for message in self._write(method, events, context):
                    yield message
        return handle

    def _stream_unary(self, method: MethodDescriptor):
        async def handle(requests: AsyncIterator[Message], context: grpc.aio.ServicerContext) -> Message:
            async with self.service.call(method) as store:
                if self.stream_match == "assembled":
                    merged = await self._assemble(method, requests)
                    events = self.service.respond(method, self.codec.to_dict(merged), store)
                    return await self._reply(method, events, context)

                # an error rule ends the call early; otherwise the final message decides
                rule = None
                async for request in requests:
                    rule = match(store, method.path, self.codec.to_dict(request))
                    if rule is not NO_MATCH and isinstance(rule.action, ErrorAction):
                        break
                if rule is None:
                    empty = self.codec.message_class(method.request_type)()
                    rule = match(store, method.path, self.codec.to_dict(empty))
                self.service.record_decision(method, rule)
                return await self._reply(method, self.service.events(method, rule), context)
        return handle

    def _stream_stream(self, method: MethodDescriptor):
        async def handle(requests: AsyncIterator[Message], context: grpc.aio.ServicerContext) -> AsyncIterator[Message]:
            async with self.service.call(method) as store:
                if self.stream_match == "assembled":
                    merged = await self._assemble(method, requests)
                    events = self.service.respond(method, self.codec.to_dict(merged), store)
                    async for message in self._write(method, events, context):
                        yield message
                    return

                async for request in requests:
                    events = self.service.respond(method, self.codec.to_dict(request), store)
                    async for message in self._write(method, events, context):
                        yield message
        return handle

    # -- helpers ---------------------------------------------------------

    async def _assemble(self, method: MethodDescriptor, requests: AsyncIterator[Message]) -> Message:
        """Merge the whole request stream (protobuf merge semantics)."""
        return self.codec.merge(method.request_type, [r async for r in requests])

    async def _reply(
        self,
        method: MethodDescriptor,
        events: AsyncIterator[ResponseEvent],
        context: grpc.aio.ServicerContext,
    ) -> Message:
        async with aclosing(events):
            async for event in events:
                if not event.terminal:
                    continue
                if not event.ok:
                    await context.abort(to_grpc_status(event.code), event.message)
                return self.codec.from_dict(method.response_type, event.payload or {})
        raise RuntimeError(f"No terminal status synthesized for {method.path}")

    async def _write(
        self,
        method: MethodDescriptor,
        events: AsyncIterator[ResponseEvent],
        context: grpc.aio.ServicerContext,
    ) -> AsyncIterator[Message]:
        """Relay message events; stop at an OK status, abort on an error status."""
        async with aclosing(events):
            async for event in events:
                if event.terminal:
                    if not event.ok:
                        await context.abort(to_grpc_status(event.code), event.message)
                    return
                yield self.codec.from_dict(method.response_type, event.payload or {})
