"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Payment lifecycle errors (2xxxx, payment block)
    PAYMENT_NOT_FOUND = 20100
    PAYMENT_ALREADY_EXISTS = 20101
    PAYMENT_FAILED = 20102
    PAYMENT_NOT_REFUNDABLE = 20103
    REFUND_NOT_FOUND = 20104
    REFUND_EXCEEDS_BALANCE = 20105
    UNSUPPORTED_METHOD = 20106
    INVALID_TRANSITION = 20107
    SPLIT_AMOUNT_MISMATCH = 20108
    SETTLEMENT_ALREADY_EXISTS = 20109

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Provider→internal status mapping; anything outside "succeeded" is a failure
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        # Charge / Refund / Transfer statuses
        "succeeded": "succeeded",
        "paid": "succeeded",
        "pending": "pending",
        "failed": "failed",
        "canceled": "failed",
        "requires_action": "pending",
        "requires_payment_method": "failed",
    },
    "bank_transfer": {
        "accepted": "succeeded",
        "completed": "succeeded",
        "queued": "pending",
        "pending": "pending",
        "rejected": "failed",
        "returned": "failed",
    },
}
