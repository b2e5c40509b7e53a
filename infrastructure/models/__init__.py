"""Infrastructure models package exports."""
from .base import Base, metadata
from .vendor import VendorModel
from .order import (
    OrderModel,
    VendorOrderModel,
    OrderItemModel,
    OrderTaxModel,
    OrderCommissionModel,
)
from .payment import PaymentModel, RefundModel
from .settlement import VendorSettlementModel

__all__ = [
    "Base",
    "metadata",
    "VendorModel",
    "OrderModel",
    "VendorOrderModel",
    "OrderItemModel",
    "OrderTaxModel",
    "OrderCommissionModel",
    "PaymentModel",
    "RefundModel",
    "VendorSettlementModel",
]
