"""
Payment specific codes and processor status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Processor/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    PROCESSOR_NOT_REGISTERED = 60010
    GATEWAY_INACTIVE = 60011
    RECURRING_NOT_SUPPORTED = 60012
    REFUND_NOT_SUPPORTED = 60013


# Processor status → PaymentRequest status
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "failed",
        "requires_action": "pending",
        "requires_confirmation": "pending",
        "processing": "processing",
        "requires_capture": "processing",
        "succeeded": "completed",
        "canceled": "cancelled",
    },
    "manual": {
        "awaiting_transfer": "pending",
        "received": "completed",
    },
}
