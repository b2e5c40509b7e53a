"""Settlement domain exports."""
from .entity import SettlementStatus, VendorSettlement
from .repository import SettlementRepository

__all__ = ["SettlementStatus", "VendorSettlement", "SettlementRepository"]
