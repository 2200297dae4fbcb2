"""
服务描述实体 - 运行时加载的 gRPC 服务 / 方法定义
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StreamingMode(str, Enum):
    """RPC shape of a method, named after the grpc handler kinds."""

    UNARY_UNARY = "unary_unary"
    UNARY_STREAM = "unary_stream"
    STREAM_UNARY = "stream_unary"
    STREAM_STREAM = "stream_stream"

    @classmethod
    def from_flags(cls, client_streaming: bool, server_streaming: bool) -> "StreamingMode":
        if client_streaming and server_streaming:
            return cls.STREAM_STREAM
        if client_streaming:
            return cls.STREAM_UNARY
        if server_streaming:
            return cls.UNARY_STREAM
        return cls.UNARY_UNARY

    @property
    def client_streaming(self) -> bool:
        return self in (StreamingMode.STREAM_UNARY, StreamingMode.STREAM_STREAM)

    @property
    def server_streaming(self) -> bool:
        return self in (StreamingMode.UNARY_STREAM, StreamingMode.STREAM_STREAM)


@dataclass(frozen=True)
class MethodDescriptor:
    """方法描述 - 由所属 ServiceDescriptor 持有"""

    name: str
    service: str
    request_type: str
    response_type: str
    mode: StreamingMode

    @property
    def path(self) -> str:
        """Wire name of the method, e.g. ``/xos.utility/Login``."""
        return f"/{self.service}/{self.name}"


@dataclass(frozen=True)
class ServiceDescriptor:
    """服务描述 - 加载后不可变"""

    full_name: str
    methods: tuple[MethodDescriptor, ...]
    source: Optional[str] = None

    @property
    def package(self) -> str:
        return self.full_name.rpartition(".")[0]

    @property
    def name(self) -> str:
        return self.full_name.rpartition(".")[2]

    def method(self, name: str) -> Optional[MethodDescriptor]:
        for m in self.methods:
            if m.name == name:
                return m
        return None
