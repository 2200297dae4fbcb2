"""
API依赖项 - 从应用状态中取出 Mock 应用服务
"""
from fastapi import HTTPException, Request, status

from application.services.mock_service import MockApplicationService


async def get_mock_service(request: Request) -> MockApplicationService:
    service = getattr(request.app.state, "mock_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Mock service not initialized",
        )
    return service
