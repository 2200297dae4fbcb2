"""
Structlog 日志配置

gRPC 拦截器、管理 API 中间件和启动流程都用 get_logger(__name__) 输出事件名日志，
grpc / uvicorn 的标准库日志通过 ProcessorFormatter 进入同一条处理链。
"""
import json
import logging
from typing import Any, List, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 第三方库自带 handler 或过于啰嗦，统一交给 root
_FOREIGN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "grpc", "grpc._cython")


def _dumps(obj, default=None, **kwargs):
    # 规则 payload 可能含中文
    return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)


def get_renderer(fmt: Optional[str] = None) -> Any:
    fmt = fmt or settings.LOG_FORMAT or ("console" if settings.DEBUG else "json")
    if fmt == "console":
        return ConsoleRenderer(colors=settings.DEBUG)
    return JSONRenderer(serializer=_dumps)


def resolve_level(level: Optional[str] = None) -> int:
    name = (level or settings.LOG_LEVEL or ("DEBUG" if settings.DEBUG else "INFO")).upper()
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {name}")
    return value


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """配置 structlog 并桥接标准库 logging；可重复调用。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=shared_pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, get_renderer(fmt)],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolve_level(level))

    for name in _FOREIGN_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
