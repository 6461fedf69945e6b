"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import invoices as invoices_routes
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.bootstrap import PaymentServices, build_payment_services
from infrastructure.database import AsyncSessionLocal, create_tables


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


def create_app(payment_services: Optional[PaymentServices] = None) -> FastAPI:
    """
    构建应用

    Args:
        payment_services: 预先装配的支付服务（测试注入）；为空时在启动阶段按配置构建
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        # 开发/测试环境自动建表，生产环境由迁移脚本负责
        if settings.DEBUG or settings.is_test:
            await create_tables()
            logger.info("database_initialized", message="Database tables created (development)")

        services = payment_services
        if services is None:
            # NoProviderAvailableError 在此抛出即启动失败
            services = build_payment_services(session_factory=AsyncSessionLocal)
        app.state.payment_services = services
        yield
        if payment_services is None:
            await services.aclose()
        logger.info("application_shutdown", message="Application shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="Payment broker for service bookings",
    )

    # 中间件从下往上执行：RequestID 最先，为日志提供 request_id
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

    app.include_router(payments_routes.router, prefix="/api/v1")
    app.include_router(invoices_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        return success_response(
            data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
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
        log_level="debug" if settings.DEBUG else "info",
    )
