"""
配置文件 - 项目配置管理
"""
import json
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.codes import RpcStatus


def _split_list(v):
    """允许 JSON 数组字符串或逗号分隔字符串两种格式。"""
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                arr = json.loads(s)
                if isinstance(arr, list):
                    return arr
            except Exception:
                pass
        return [item.strip() for item in s.split(",") if item.strip()]
    return v


class GrpcTlsSettings(BaseModel):
    enabled: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None
    ca: Optional[str] = None


class GrpcSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 50051
    # This maps to GRPC option grpc.max_concurrent_streams
    max_concurrent_streams: int = 100
    reflection: bool = True
    shutdown_grace: float = 1.0
    tls: GrpcTlsSettings = Field(default_factory=GrpcTlsSettings)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ProtoSourceSettings(BaseModel):
    path: str
    package: Optional[str] = None
    service: Optional[str] = None


class MockSettings(BaseModel):
    protos: list[ProtoSourceSettings] = Field(default_factory=list)
    include_dirs: list[str] = Field(default_factory=list)
    rules_path: Optional[str] = None
    # 请求消息渲染方式（用于规则匹配）
    enum_mode: Literal["string", "number"] = "string"
    include_defaults: bool = True
    keep_case: bool = True
    # 流式请求：assembled = 半关闭后合并匹配一次；per_message = 每条消息匹配一次
    stream_match: Literal["assembled", "per_message"] = "assembled"
    # 未命中任何规则时返回的状态码；不允许 OK
    no_match_status: RpcStatus = RpcStatus.UNIMPLEMENTED

    @field_validator("protos", mode="before")
    @classmethod
    def _parse_protos(cls, v):
        v = _split_list(v)
        if isinstance(v, list):
            return [{"path": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator("include_dirs", mode="before")
    @classmethod
    def _parse_include_dirs(cls, v):
        return _split_list(v)

    @field_validator("no_match_status", mode="before")
    @classmethod
    def _parse_no_match_status(cls, v):
        status = RpcStatus.parse(v)
        if status is RpcStatus.OK:
            raise ValueError("no_match_status must not be OK")
        return status


class AdminSettings(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="grpc-mockd")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    # 日志级别与输出格式；DEBUG=true 时默认彩色控制台输出
    LOG_LEVEL: Optional[str] = Field(default=None)
    LOG_FORMAT: Optional[Literal["console", "json"]] = Field(default=None)

    grpc: GrpcSettings = Field(default_factory=GrpcSettings)
    mock: MockSettings = Field(default_factory=MockSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settings = Settings()
