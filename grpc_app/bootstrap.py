"""Startup wiring: schemas -> registry -> rules -> application service -> servicer.

Every step raises on failure (SchemaError, DuplicateServiceError,
UnknownMethodError, ...) so the process never starts serving a partial
configuration.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.config import MockSettings, settings
from core.logging_config import get_logger
from application.services.mock_service import MockApplicationService
from domain.rules.store import RuleStoreHolder
from domain.schema.registry import Registry, RegistryBuilder
from grpc_app.services.mock_service import MockServicer
from infrastructure.protos import CodecOptions, MessageCodec, SchemaLoader, SchemaSource
from infrastructure.rules.loader import RuleLoader


logger = get_logger(__name__)


@dataclass
class MockRuntime:
    registry: Registry
    codec: MessageCodec
    service: MockApplicationService
    servicer: MockServicer
    rules: RuleLoader


def build_runtime(mock: Optional[MockSettings] = None) -> MockRuntime:
    cfg = mock or settings.mock
    if not cfg.protos:
        logger.warning("schema_not_configured", message="No proto sources configured (MOCK__PROTOS)")

    loader = SchemaLoader(include_dirs=cfg.include_dirs)
    builder = RegistryBuilder()
    # One load per source, merging into the same registry
    for src in cfg.protos:
        loader.load([SchemaSource(src.path, package=src.package, service=src.service)], builder)
    registry = builder.build()

    codec = MessageCodec(
        loader.pool,
        CodecOptions(
            enum_mode=cfg.enum_mode,
            include_defaults=cfg.include_defaults,
            keep_case=cfg.keep_case,
        ),
    )
    rule_loader = RuleLoader(cfg.rules_path, codec)
    holder = RuleStoreHolder(rule_loader.load(registry))

    service = MockApplicationService(
        registry,
        holder,
        no_match_status=cfg.no_match_status,
        rule_source=rule_loader,
    )
    servicer = MockServicer(registry, codec, service, stream_match=cfg.stream_match)
    logger.info(
        "mock_runtime_ready",
        services=len(registry),
        methods=len(registry.methods),
        rules=len(holder.current),
    )
    return MockRuntime(registry=registry, codec=codec, service=service, servicer=servicer, rules=rule_loader)
