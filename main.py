"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import ServiceContainer
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import carts, invoices, notifications, orders, payments, webhooks
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables

# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


def build_default_container() -> ServiceContainer:
    """生产装配：SQLAlchemy 工作单元 + 配置中启用的支付处理器 + Celery 邮件队列"""
    from infrastructure.external.payments import build_processor_registry
    from infrastructure.tasks.utils.dispatcher import TaskDispatcher
    from infrastructure.unit_of_work import sqlalchemy_uow_factory

    return ServiceContainer(
        uow_factory=sqlalchemy_uow_factory(),
        registry=build_processor_registry(),
        email_queue=TaskDispatcher(),
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        # 启动时创建数据库表（仅开发环境）。生产应使用迁移
        if settings.DEBUG and container is None:
            await create_tables()
            logger.info("database_initialized", message="Database tables created (development)")
        if getattr(app.state, "container", None) is None:
            app.state.container = build_default_container()
        scheduler = app.state.container.scheduler
        start = getattr(scheduler, "start", None)
        if callable(start):
            start()
        yield
        stop = getattr(scheduler, "stop", None)
        if callable(stop):
            await stop()
        logger.info("application_shutdown", message="Application shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Hosting billing core: cart, orders, invoices, payments and webhooks",
    )
    app.state.container = container

    # 添加中间件（注意顺序：从下往上执行）
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    for module in (carts, orders, invoices, payments, webhooks, notifications):
        app.include_router(module.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "docs": "/docs",
                "redoc": "/redoc"
            },
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
