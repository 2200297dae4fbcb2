"""管理路由：查看已加载的服务与规则、热重载规则、调用统计。"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_mock_service
from application.dto import RuleSetSummaryDTO, ServiceSummaryDTO
from application.services.mock_service import MockApplicationService
from core.response import ApiResponse, success_response


router = APIRouter(
    prefix="/admin",
    tags=["Mock 管理"],
)


@router.get(
    "/services",
    summary="已注册的服务与方法",
    response_model=ApiResponse[list[ServiceSummaryDTO]],
)
async def list_services(service: MockApplicationService = Depends(get_mock_service)):
    return success_response(data=service.describe_services())


@router.get(
    "/rules",
    summary="当前规则快照",
    response_model=ApiResponse[RuleSetSummaryDTO],
)
async def list_rules(service: MockApplicationService = Depends(get_mock_service)):
    return success_response(data=service.describe_rules())


@router.post(
    "/rules/reload",
    summary="重新读取规则文档并原子替换",
    response_model=ApiResponse[RuleSetSummaryDTO],
)
async def reload_rules(service: MockApplicationService = Depends(get_mock_service)):
    # 读取与校验在线程池执行；失败时旧快照保持不变
    store = await run_in_threadpool(service.load_rules)
    service.reload(store)
    return success_response(data=service.describe_rules(), message="Rules reloaded")


@router.get(
    "/metrics",
    summary="调用统计",
    response_model=ApiResponse[dict],
)
async def metrics(service: MockApplicationService = Depends(get_mock_service)):
    return success_response(data=service.metrics.to_dict())
