"""
管理 API 入口（FastAPI）

由 grpc_main.py 在同一事件循环中用 uvicorn 启动（ADMIN__ENABLED=true），
与 gRPC 服务共享同一个 MockApplicationService。
"""
from fastapi import FastAPI

from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.routes import admin
from application.services.mock_service import MockApplicationService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger


logger = get_logger(__name__)


def create_app(service: MockApplicationService) -> FastAPI:
    app = FastAPI(
        title=f"{settings.PROJECT_NAME} admin",
        version=settings.VERSION,
        debug=settings.DEBUG,
        description="Mock gRPC 服务管理接口",
    )
    app.state.mock_service = service

    # 添加中间件（注意顺序：从下往上执行）
    app.add_middleware(LoggingMiddleware)
    # Request ID 最后添加、最先执行，为日志提供 request_id
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.include_router(admin.router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(
            data={
                "status": "healthy",
                "services": len(service.registry),
                "rules_version": service.snapshot().version,
            }
        )

    return app
