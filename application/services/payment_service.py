"""
Application service orchestrating order payment use-cases.

This class depends only on the application PaymentGateway port, the Unit of
Work abstraction and DTOs. Gateway implementations are provided by
infrastructure and must be injected from the composition root (API/tasks),
keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
import hashlib
from decimal import Decimal
from typing import Any, Callable, Optional

from application.dtos.payments import (
    ChargeRequest,
    GatewayRefundRequest,
    GatewayResult,
    PaymentDTO,
    RefundDTO,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    OrderNotFoundException,
    OrderNotPayableException,
    PaymentNotFoundException,
    PaymentProcessingException,
    SplitAmountMismatchException,
    UnsupportedPaymentMethodException,
)
from domain.common.money import quantize
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.payment.commission import CommissionPolicy
from domain.payment.entity import Payment, PaymentMethod
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

# Methods the gateway can charge today; everything else fails explicitly.
GATEWAY_METHODS = frozenset({PaymentMethod.STRIPE, PaymentMethod.CREDIT_CARD})


def idempotency_key(operation: str, record_id: Any, amount: Decimal, currency: str) -> str:
    """Stable, reproducible key derived from business identifiers (no timestamp)."""
    base = f"{operation}|{record_id}|{amount}|{(currency or '').upper()}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _error_payload(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, asyncio.TimeoutError):
        return {"error": "timeout", "message": "gateway call timed out"}
    return {"error": type(exc).__name__, "message": str(exc)}


def _log_events(domain_service: PaymentDomainService) -> None:
    for event in domain_service.clear_events():
        logger.info(
            "payment_domain_event",
            event_type=type(event).__name__,
            event_id=event.event_id,
            payment_id=event.payment_id,
            order_id=event.order_id,
        )


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        commission_policy: Optional[CommissionPolicy] = None,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.commission_policy = commission_policy or CommissionPolicy()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # payments
    # ------------------------------------------------------------------
    @staticmethod
    def _parse_method(method: PaymentMethod | str) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            raise UnsupportedPaymentMethodException(str(method)) from None

    @staticmethod
    def _ensure_payable(order: Optional[Order], order_id: int) -> Order:
        if order is None or order.is_deleted:
            raise OrderNotFoundException(order_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderNotPayableException(order_id, "order is cancelled")
        if order.status != OrderStatus.PENDING:
            raise OrderNotPayableException(order_id, f"order status is {order.status.value}")
        if not order.vendor_orders:
            raise OrderNotPayableException(order_id, "order has no vendor orders")
        if order.total <= 0:
            raise OrderNotPayableException(order_id, "order total must be positive")
        return order

    async def _charge(self, payment: Payment, gateway_data: dict[str, Any]) -> GatewayResult:
        if payment.method not in GATEWAY_METHODS:
            raise UnsupportedPaymentMethodException(payment.method.value)
        req = ChargeRequest(
            payment_id=payment.id,
            order_id=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
            method=payment.method.value,
            idempotency_key=idempotency_key("charge", payment.id, payment.amount, payment.currency),
            gateway_data=gateway_data,
        )
        logger.info(
            "payment_charge_request",
            payment_id=payment.id,
            order_id=payment.order_id,
            provider=self.gateway.provider,
            idempotency_key=req.idempotency_key,
        )
        return await asyncio.wait_for(self.gateway.charge(req), timeout=self.timeout)

    async def process_order_payment(
        self,
        order_id: int,
        method: PaymentMethod | str,
        gateway_data: Optional[dict[str, Any]] = None,
    ) -> PaymentDTO:
        """
        Create the payment graph for an order and submit it to the gateway.

        Multi-vendor orders get a parent plus one child per vendor and only the
        parent is charged; single-vendor orders get one standalone payment.
        Validation errors raise before anything is written. Gateway failures
        are committed as failed rows and then raised as PaymentProcessingException.
        """
        method = self._parse_method(method)
        gateway_data = dict(gateway_data or {})
        failure: Optional[PaymentProcessingException] = None
        cause: Optional[BaseException] = None

        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(
                uow.payment_repository, uow.refund_repository, self.commission_policy
            )

            # the order row lock serializes concurrent payments for the same order
            order = self._ensure_payable(await uow.order_repository.get_for_update(order_id), order_id)
            await domain_service.ensure_no_active_payment(order.id)
            if method not in GATEWAY_METHODS:
                raise UnsupportedPaymentMethodException(method.value)
            vendor_sum = order.vendor_orders_total()
            if vendor_sum != quantize(order.total, order.currency):
                raise SplitAmountMismatchException(order.total, vendor_sum)

            vendor_ids = order.vendor_ids()
            vendors = await uow.vendor_repository.get_many(vendor_ids)
            for vid in vendor_ids:
                domain_service.method_for(vendors.get(vid), method)

            if order.is_multi_vendor:
                payment, children = await domain_service.create_split(order, vendors, method)
                domain_service.verify_split(payment, children)
                logger.info(
                    "split_payment_created",
                    payment_id=payment.id,
                    order_id=order.id,
                    child_count=len(children),
                    amount=str(payment.amount),
                )
            else:
                vendor_id = vendor_ids[0]
                payment = await domain_service.create_standalone(order, vendor_id, vendors.get(vendor_id), method)
                children = []
                logger.info(
                    "payment_created",
                    payment_id=payment.id,
                    order_id=order.id,
                    vendor_id=vendor_id,
                    amount=str(payment.amount),
                )

            result: Optional[GatewayResult] = None
            try:
                result = await self._charge(payment, gateway_data)
            except Exception as exc:  # any submission error fails the payment graph
                cause = exc
                reason = "gateway timeout" if isinstance(exc, asyncio.TimeoutError) else str(exc) or type(exc).__name__
                raw = _error_payload(exc)
            else:
                reason = f"gateway status {result.status}"
                raw = result.raw

            if result is not None and result.succeeded:
                payment, children = await domain_service.confirm_paid(
                    payment, children, transaction_id=result.transaction_id, gateway_response=result.raw
                )
                order.mark_processing()
                await uow.order_repository.update(order)
                logger.info(
                    "payment_succeeded",
                    payment_id=payment.id,
                    order_id=order.id,
                    transaction_id=payment.transaction_id,
                    child_count=len(children),
                )
            else:
                payment, children = await domain_service.mark_failed(
                    payment, children, reason=reason, gateway_response=raw
                )
                logger.warning(
                    "split_payment_failed" if payment.is_parent_payment() else "payment_failed",
                    payment_id=payment.id,
                    order_id=order.id,
                    reason=reason,
                )
                failure = PaymentProcessingException(payment_id=payment.id, order_id=order.id)

            _log_events(domain_service)
            dto = PaymentDTO.from_entity(payment, children)

        if failure is not None:
            raise failure from cause
        return dto

    async def get_payment(self, payment_id: int) -> PaymentDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if not payment:
                raise PaymentNotFoundException(payment_id)
            children = []
            if payment.is_parent_payment():
                children = await uow.payment_repository.list_children(payment.id)
            refunds = await uow.refund_repository.list_by_payment(payment.id)
            return PaymentDTO.from_entity(payment, children, refunds)

    # ------------------------------------------------------------------
    # refunds
    # ------------------------------------------------------------------
    async def create_refund(self, payment_id: int, amount: Decimal, reason: Optional[str] = None) -> RefundDTO:
        """Record a pending refund and move the payment to (partially_)refunded."""
        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(
                uow.payment_repository, uow.refund_repository, self.commission_policy
            )
            payment, refund = await domain_service.create_refund(payment_id, amount, reason)
            logger.info(
                "refund_created",
                refund_id=refund.id,
                payment_id=payment.id,
                amount=str(refund.amount),
                payment_status=payment.status.value,
            )
            _log_events(domain_service)
            return RefundDTO.from_entity(refund)

    async def execute_refund(self, refund_id: int) -> RefundDTO:
        """
        Submit a pending refund to the gateway.

        Success marks it processed; failure marks it failed and re-derives the
        payment status from the remaining non-failed refunds. Non-pending
        refunds are returned unchanged.
        """
        async with self._uow_factory() as uow:
            domain_service = PaymentDomainService(
                uow.payment_repository, uow.refund_repository, self.commission_policy
            )
            refund = await domain_service.get_refund(refund_id)
            if not refund.is_pending:
                logger.info("refund_execute_skipped", refund_id=refund.id, status=refund.status.value)
                return RefundDTO.from_entity(refund)

            payment = await uow.payment_repository.get_by_id(refund.payment_id)
            if not payment:
                raise PaymentNotFoundException(refund.payment_id)
            charge_id = payment.transaction_id
            if charge_id is None and payment.is_child_payment():
                # children are captured by the parent's charge
                parent = await uow.payment_repository.get_by_id(payment.parent_payment_id)
                charge_id = parent.transaction_id if parent else None

            req = GatewayRefundRequest(
                refund_id=refund.id,
                transaction_id=charge_id,
                amount=refund.amount,
                currency=refund.currency,
                reason=refund.reason,
                idempotency_key=idempotency_key("refund", refund.id, refund.amount, refund.currency),
            )
            logger.info(
                "refund_execute_request",
                refund_id=refund.id,
                payment_id=payment.id,
                provider=self.gateway.provider,
                idempotency_key=req.idempotency_key,
            )

            result: Optional[GatewayResult] = None
            try:
                result = await asyncio.wait_for(self.gateway.refund(req), timeout=self.timeout)
            except Exception as exc:  # recorded on the refund row, payment status re-derived
                reason = "gateway timeout" if isinstance(exc, asyncio.TimeoutError) else str(exc) or type(exc).__name__
                raw = _error_payload(exc)
            else:
                reason = f"gateway status {result.status}"
                raw = result.raw

            if result is not None and result.succeeded:
                refund = await domain_service.complete_refund(
                    refund, transaction_id=result.transaction_id, gateway_response=result.raw
                )
                logger.info("refund_processed", refund_id=refund.id, transaction_id=refund.transaction_id)
            else:
                refund, payment, restored = await domain_service.fail_refund(
                    refund, reason=reason, gateway_response=raw
                )
                if restored:
                    logger.warning(
                        "refund_failed",
                        refund_id=refund.id,
                        payment_id=payment.id,
                        reason=reason,
                        payment_status=payment.status.value,
                    )
                else:
                    logger.error(
                        "refund_failed_manual_followup",
                        refund_id=refund.id,
                        payment_id=payment.id,
                        reason=reason,
                        payment_status=payment.status.value,
                    )

            _log_events(domain_service)
            return RefundDTO.from_entity(refund)

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
