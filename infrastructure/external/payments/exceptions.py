"""
Exceptions for payment processors mapped to the unified gateway error.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import PaymentGatewayError


class PaymentProviderError(PaymentGatewayError):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider_code": provider_code} if provider_code else {}
        if details:
            full_details.update(details)
        super().__init__(message, gateway=provider, details=full_details)
        self.provider = provider
        self.provider_code = provider_code


class PaymentRecoverableError(PaymentProviderError):
    """网络抖动 / 限流，可重试"""
