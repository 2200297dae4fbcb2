"""
规则实体 - 谓词、动作与规则
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from shared.codes import RpcStatus


class MatchMode(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    REGEX = "regex"


@dataclass(frozen=True)
class Predicate:
    """A condition on one field of the request payload.

    A predicate without a field path is a wildcard and always holds.
    """

    field: Optional[str]
    value: Any = None
    mode: MatchMode = MatchMode.EXACT
    pattern: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.mode is MatchMode.REGEX and self.pattern is None:
            if not isinstance(self.value, str):
                raise ValueError(f"regex predicate on {self.field!r} needs a string pattern")
            object.__setattr__(self, "pattern", re.compile(self.value))

    @property
    def is_wildcard(self) -> bool:
        return not self.field

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(self.field.split(".")) if self.field else ()


@dataclass(frozen=True)
class ResponseAction:
    payload: dict = field(default_factory=dict)
    delay_ms: int = 0


@dataclass(frozen=True)
class ErrorAction:
    code: RpcStatus
    message: str = ""
    delay_ms: int = 0

    def __post_init__(self) -> None:
        if self.code is RpcStatus.OK:
            raise ValueError("error action cannot use status OK")


@dataclass(frozen=True)
class StreamItem:
    payload: dict = field(default_factory=dict)
    delay_ms: int = 0


@dataclass(frozen=True)
class StreamAction:
    items: tuple[StreamItem, ...] = ()
    code: RpcStatus = RpcStatus.OK
    message: str = ""


Action = Union[ResponseAction, ErrorAction, StreamAction]


@dataclass(frozen=True)
class Rule:
    """规则：方法 + 谓词列表 + 动作；谓词为空即该方法的兜底规则"""

    method: str
    predicates: tuple[Predicate, ...]
    action: Action
    index: int = 0
    description: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return not self.predicates

    def label(self) -> str:
        return self.description or f"rule#{self.index}"
