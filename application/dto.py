"""
数据传输对象（DTO）- 规则文档结构与管理接口的数据传输
"""
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.rules.entity import (
    ErrorAction,
    MatchMode,
    Predicate,
    ResponseAction,
    Rule,
    StreamAction,
    StreamItem,
)
from shared.codes import RpcStatus


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _parse_status(v: Any) -> RpcStatus:
    return RpcStatus.parse(v)


class PredicateDTO(DTOBase):
    """谓词：字段路径 + 期望值 + 比较模式"""
    field: Optional[str] = Field(None, description="点分隔的字段路径；为空表示通配")
    value: Any = None
    mode: MatchMode = MatchMode.EXACT

    def to_entity(self) -> Predicate:
        return Predicate(field=self.field or None, value=self.value, mode=self.mode)


class ResponseActionDTO(DTOBase):
    type: Literal["response"]
    payload: dict[str, Any] = Field(default_factory=dict)
    delay_ms: int = Field(0, ge=0)

    def to_entity(self) -> ResponseAction:
        return ResponseAction(payload=self.payload, delay_ms=self.delay_ms)


class ErrorActionDTO(DTOBase):
    type: Literal["error"]
    code: RpcStatus
    message: str = ""
    delay_ms: int = Field(0, ge=0)

    @field_validator("code", mode="before")
    @classmethod
    def _code(cls, v):
        status = _parse_status(v)
        if status is RpcStatus.OK:
            raise ValueError("error action cannot use status OK")
        return status

    def to_entity(self) -> ErrorAction:
        return ErrorAction(code=self.code, message=self.message, delay_ms=self.delay_ms)


class StreamItemDTO(DTOBase):
    payload: dict[str, Any] = Field(default_factory=dict)
    delay_ms: int = Field(0, ge=0)


class StreamStatusDTO(DTOBase):
    code: RpcStatus = RpcStatus.OK
    message: str = ""

    @field_validator("code", mode="before")
    @classmethod
    def _code(cls, v):
        return _parse_status(v)


class StreamActionDTO(DTOBase):
    type: Literal["stream"]
    items: list[StreamItemDTO] = Field(default_factory=list)
    status: StreamStatusDTO = Field(default_factory=StreamStatusDTO)

    def to_entity(self) -> StreamAction:
        return StreamAction(
            items=tuple(StreamItem(payload=i.payload, delay_ms=i.delay_ms) for i in self.items),
            code=self.status.code,
            message=self.status.message,
        )


ActionDTO = Annotated[
    Union[ResponseActionDTO, ErrorActionDTO, StreamActionDTO],
    Field(discriminator="type"),
]


class RuleEntryDTO(DTOBase):
    """规则文档中的一条规则"""
    method: str = Field(..., min_length=1)
    description: Optional[str] = None
    predicates: list[PredicateDTO] = Field(default_factory=list)
    action: ActionDTO

    def to_entity(self, index: int, method: Optional[str] = None) -> Rule:
        return Rule(
            method=method or self.method,
            predicates=tuple(p.to_entity() for p in self.predicates),
            action=self.action.to_entity(),
            index=index,
            description=self.description,
        )


class RuleDocumentDTO(DTOBase):
    rules: list[RuleEntryDTO] = Field(default_factory=list)


class MethodSummaryDTO(BaseModel):
    name: str
    path: str
    mode: str
    request_type: str
    response_type: str
    rules: int
    has_fallback: bool


class ServiceSummaryDTO(BaseModel):
    name: str
    source: Optional[str] = None
    methods: list[MethodSummaryDTO]


class RuleSummaryDTO(BaseModel):
    index: int
    method: str
    description: Optional[str] = None
    predicates: int
    action: str
    fallback: bool


class RuleSetSummaryDTO(BaseModel):
    version: int
    total: int
    rules: list[RuleSummaryDTO]
