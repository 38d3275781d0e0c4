from .logging import LoggingMiddleware
from .request_id import RequestIDMiddleware, resolve_client_ip

__all__ = ["LoggingMiddleware", "RequestIDMiddleware", "resolve_client_ip"]
