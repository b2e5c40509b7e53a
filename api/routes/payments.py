"""
支付API路由 - FastAPI表现层

保持轻量：只做参数解析与响应封装，业务规则在应用服务与领域层。
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_payment_service, get_task_dispatcher
from application.dtos.payments import CreateRefund, PaymentDTO, ProcessOrderPayment, RefundDTO
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from infrastructure.tasks import TaskDispatcher

router = APIRouter(prefix="/payments", tags=["支付"])
logger = get_logger(__name__)


@router.post(
    "/orders/{order_id}",
    summary="为订单发起支付",
    response_model=ApiResponse[PaymentDTO],
    status_code=status.HTTP_201_CREATED,
)
async def process_order_payment(
    order_id: int,
    body: ProcessOrderPayment,
    service: PaymentService = Depends(get_payment_service),
):
    """
    为订单创建支付并提交网关

    - 多供应商订单：创建父支付与每个供应商的子支付，仅对父支付扣款
    - 单供应商订单：创建一笔独立支付
    """
    payment = await service.process_order_payment(order_id, body.method, body.gateway_data)
    return success_response(data=payment, message="Payment processed")


@router.get("/{payment_id}", summary="查询支付", response_model=ApiResponse[PaymentDTO])
async def get_payment(payment_id: int, service: PaymentService = Depends(get_payment_service)):
    """查询支付详情（父支付包含子支付，以及退款记录）"""
    return success_response(data=await service.get_payment(payment_id))


@router.post(
    "/{payment_id}/refunds",
    summary="创建退款",
    response_model=ApiResponse[RefundDTO],
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_refund(
    payment_id: int,
    body: CreateRefund,
    service: PaymentService = Depends(get_payment_service),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
):
    """记录待处理退款，网关提交由后台任务执行"""
    refund = await service.create_refund(payment_id, body.amount, body.reason)
    dispatcher.enqueue_refund_execution(refund.id)
    logger.info("refund_execution_enqueued", refund_id=refund.id, payment_id=payment_id)
    return success_response(data=refund, message="Refund accepted")
