import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

import uvicorn

from core.config import MockSettings, ProtoSourceSettings, settings
from core.logging_config import get_logger, configure_logging
from domain.common.exceptions import MockException
from grpc_app.bootstrap import build_runtime
from grpc_app.server import create_server


logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="grpc-mockd", description="Protobuf-driven mock gRPC server")
    parser.add_argument("--address", help=f"bind address (default {settings.grpc.address})")
    parser.add_argument("--proto", action="append", default=[], help="proto file or descriptor set; repeatable")
    parser.add_argument("--include", action="append", default=[], help="import search directory; repeatable")
    parser.add_argument("--rules", help="rule document (JSON)")
    parser.add_argument("--log-level", help="override LOG_LEVEL (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def mock_settings_from(args: argparse.Namespace) -> MockSettings:
    """命令行参数覆盖配置中的对应项"""
    update = {}
    if args.proto:
        update["protos"] = [ProtoSourceSettings(path=p) for p in args.proto]
    if args.include:
        update["include_dirs"] = list(args.include)
    if args.rules:
        update["rules_path"] = args.rules
    return settings.mock.model_copy(update=update)


async def serve(args: argparse.Namespace) -> int:
    address = args.address or settings.grpc.address
    try:
        runtime = build_runtime(mock_settings_from(args))
        server, port = await create_server(runtime.servicer, address=address)
    except (MockException, RuntimeError, OSError, ValueError) as exc:
        logger.error("startup_failed", error=str(exc), error_type=type(exc).__name__)
        return 1

    await server.start()
    logger.info("Listening for requests", address=address, port=port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    admin: Optional[uvicorn.Server] = None
    admin_task: Optional[asyncio.Task] = None
    if settings.admin.enabled:
        from main import create_app

        admin = uvicorn.Server(
            uvicorn.Config(
                create_app(runtime.service),
                host=settings.admin.host,
                port=settings.admin.port,
                log_config=None,
            )
        )
        admin_task = asyncio.create_task(admin.serve())
        logger.info("admin_started", host=settings.admin.host, port=settings.admin.port)

    waiters = [asyncio.create_task(stop.wait()), asyncio.create_task(server.wait_for_termination())]
    if admin_task is not None:
        waiters.append(admin_task)
    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

    logger.info("grpc_stopping", grace=settings.grpc.shutdown_grace)
    if admin is not None:
        admin.should_exit = True
    await server.stop(grace=settings.grpc.shutdown_grace)
    if admin_task is not None:
        await admin_task
    for task in waiters:
        task.cancel()
    logger.info("grpc_stopped")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    return asyncio.run(serve(args))


if __name__ == "__main__":
    sys.exit(main())
