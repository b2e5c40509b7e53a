"""
结算API路由 - 供运营手动触发结算批次
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_settlement_service
from application.dtos.settlements import RunSettlements, SettlementRunSummary
from application.services.settlement_service import SettlementService
from core.response import Response as ApiResponse, success_response

router = APIRouter(prefix="/settlements", tags=["结算"])


@router.post("/run", summary="执行结算批次", response_model=ApiResponse[SettlementRunSummary])
async def run_settlements(
    body: RunSettlements = RunSettlements(),
    service: SettlementService = Depends(get_settlement_service),
):
    summary = await service.process_settlements(include_failed=body.include_failed)
    return success_response(data=summary, message="Settlement run finished")
