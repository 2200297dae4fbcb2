from __future__ import annotations

from typing import Optional, Sequence
import grpc
from grpc_health.v1 import health, health_pb2_grpc, health_pb2
from grpc_reflection.v1alpha import reflection

from core.config import GrpcSettings, settings
from core.logging_config import get_logger
from grpc_app.interceptors.request_id import RequestIdInterceptor
from grpc_app.interceptors.logging import LoggingInterceptor
from grpc_app.interceptors.exceptions import ExceptionMappingInterceptor
from grpc_app.services.mock_service import MockServicer


logger = get_logger(__name__)


async def create_server(
    servicer: MockServicer,
    grpc_settings: Optional[GrpcSettings] = None,
    address: Optional[str] = None,
) -> tuple[grpc.aio.Server, int]:
    """Build the mock server and bind it; returns (server, bound port)."""
    cfg = grpc_settings or settings.grpc
    interceptors: Sequence[grpc.aio.ServerInterceptor] = (
        RequestIdInterceptor(),
        LoggingInterceptor(),
        ExceptionMappingInterceptor(),  # maps mock exceptions / unexpected errors
    )

    options = [
        ("grpc.max_concurrent_streams", max(1, cfg.max_concurrent_streams)),
    ]
    server = grpc.aio.server(interceptors=interceptors, options=options)

    # Register mocked services
    server.add_generic_rpc_handlers(tuple(servicer.generic_handlers()))
    service_names = [svc.full_name for svc in servicer.registry]

    # Health service
    health_svc = health.aio.HealthServicer()
    health_pb2_grpc.add_HealthServicer_to_server(health_svc, server)
    await health_svc.set("", health_pb2.HealthCheckResponse.SERVING)
    for name in service_names:
        await health_svc.set(name, health_pb2.HealthCheckResponse.SERVING)

    # Reflection over the runtime-loaded descriptors
    if cfg.reflection:
        reflection.enable_server_reflection(
            (*service_names, reflection.SERVICE_NAME),
            server,
            pool=servicer.codec.pool,
        )

    # Bind address
    address = address or cfg.address

    if cfg.tls.enabled:
        if not (cfg.tls.cert and cfg.tls.key):
            raise RuntimeError("GRPC TLS enabled but cert/key not provided")
        with open(cfg.tls.cert, "rb") as f:
            cert_chain = f.read()
        with open(cfg.tls.key, "rb") as f:
            private_key = f.read()
        root_certificates = None
        if cfg.tls.ca:
            with open(cfg.tls.ca, "rb") as f:
                root_certificates = f.read()
        creds = grpc.ssl_server_credentials(
            [(private_key, cert_chain)],
            root_certificates=root_certificates,
            require_client_auth=bool(root_certificates),
        )
        port = server.add_secure_port(address, creds)
    else:
        port = server.add_insecure_port(address)

    logger.info("grpc_server_created", address=address, port=port, services=service_names)
    return server, port
