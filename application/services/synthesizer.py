"""Response synthesis.

Turns a matched rule into the ordered events a call writes back: zero or
more `message` events followed by exactly one terminal `status` event. For
unary-response methods the terminal status carries the reply payload.

Every call gets a fresh generator, so a rule's stream restarts from its
first item on each call. Delays are plain ``asyncio.sleep`` awaits inside
the calling task: they suspend only that call and are cancelled with it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from domain.rules.entity import ErrorAction, ResponseAction, Rule, StreamAction
from domain.schema.entity import MethodDescriptor
from shared.codes import RpcStatus


Sleep = Callable[[float], Awaitable[None]]


class EventKind(str, Enum):
    MESSAGE = "message"
    STATUS = "status"


@dataclass(frozen=True)
class ResponseEvent:
    kind: EventKind
    payload: Optional[dict] = None
    code: RpcStatus = RpcStatus.OK
    message: str = ""

    @property
    def terminal(self) -> bool:
        return self.kind is EventKind.STATUS

    @property
    def ok(self) -> bool:
        return self.code is RpcStatus.OK

    @classmethod
    def send(cls, payload: dict) -> "ResponseEvent":
        return cls(EventKind.MESSAGE, payload=payload)

    @classmethod
    def status(cls, code: RpcStatus, message: str = "", payload: Optional[dict] = None) -> "ResponseEvent":
        return cls(EventKind.STATUS, payload=payload, code=code, message=message)


async def synthesize(
    method: MethodDescriptor,
    rule: Rule,
    *,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[ResponseEvent]:
    action = rule.action

    if isinstance(action, ErrorAction):
        await _pause(sleep, action.delay_ms)
        yield ResponseEvent.status(action.code, action.message)
        return

    if not method.mode.server_streaming:
        if not isinstance(action, ResponseAction):
            raise TypeError(f"{type(action).__name__} cannot answer unary method {method.path}")
        await _pause(sleep, action.delay_ms)
        yield ResponseEvent.status(RpcStatus.OK, payload=dict(action.payload))
        return

    if isinstance(action, ResponseAction):
        await _pause(sleep, action.delay_ms)
        yield ResponseEvent.send(dict(action.payload))
        yield ResponseEvent.status(RpcStatus.OK)
        return

    if isinstance(action, StreamAction):
        for item in action.items:
            await _pause(sleep, item.delay_ms)
            yield ResponseEvent.send(dict(item.payload))
        yield ResponseEvent.status(action.code, action.message)
        return

    raise TypeError(f"Unsupported action {type(action).__name__}")


async def _pause(sleep: Sleep, delay_ms: int) -> None:
    if delay_ms > 0:
        await sleep(delay_ms / 1000.0)
