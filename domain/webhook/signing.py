"""HMAC-SHA256 负载签名"""
from __future__ import annotations

import hashlib
import hmac
from typing import Union

BytesLike = Union[bytes, str]


def _as_bytes(value: BytesLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign_payload(payload: BytesLike, secret: BytesLike) -> str:
    """对原始负载字节做 HMAC-SHA256，返回十六进制摘要"""
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: BytesLike, signature: str, secret: BytesLike) -> bool:
    """常量时间比较签名"""
    if not signature or not secret:
        return False
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
