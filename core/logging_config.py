"""
Structlog 日志配置模块

structlog 与标准库 logging 共用同一处理链；请求中间件通过 contextvars
绑定 request_id，所有日志自动携带。卡号、CVC 与各类密钥在渲染前被遮蔽。
"""
import json
import logging
from typing import Any, List

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings

SENSITIVE_KEYS = frozenset({"number", "card_number", "cvc", "secret", "webhook_secret", "secret_key", "api_key"})


def _add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    return event_dict


def _mask_sensitive(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            text = str(value)
            event_dict[key] = f"***{text[-4:]}" if key in ("number", "card_number") else "***"
    return event_dict


def get_renderer() -> Any:
    """DEBUG 使用彩色控制台输出，其余环境输出 JSON。"""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        # Decimal 交给 str，金额不丢精度
        return json.dumps(obj, ensure_ascii=False, default=default or str, **kwargs)

    return JSONRenderer(serializer=_dumps)


def configure_logging() -> None:
    """配置 structlog 并桥接标准库 logging 到同一处理链。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        _add_service_name,
        _mask_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=shared_pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    # SQL 日志只在显式开启时输出
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )
    # httpx 每次 Webhook 投递都会打一条请求日志
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
