"""
Business codes carried in every API envelope (``Response.code``).

Billing-specific validation and ledger conflicts get their own codes so
clients can react without parsing messages; gateway codes live in
``shared.codes.payment_codes``.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request validation (1xxxx)
    PARAM_VALIDATION_ERROR = 10003
    INVALID_AMOUNT = 10004
    INVALID_BILLING_CYCLE = 10005
    CART_EMPTY = 10006
    INVALID_COUPON = 10007
    CURRENCY_MISMATCH = 10008

    # Resource state and ledger (2xxxx)
    NOT_FOUND = 20006
    STATE_CONFLICT = 20010
    INSUFFICIENT_BALANCE = 20011
    REFUND_EXCEEDS_REMAINING = 20012
    TRANSACTION_NOT_REFUNDABLE = 20013
    PAYMENT_REQUEST_EXPIRED = 20014

    # Authentication (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System (4xxxx)
    SYSTEM_ERROR = 40000
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    CONFIGURATION_ERROR = 40004

    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
