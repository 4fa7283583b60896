"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import orders as orders_routes
from api.routes import callbacks as callbacks_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.dependencies import shutdown_dependencies
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging


# 入口处重新配置日志，DEBUG 等设置以此时加载的配置为准
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    if settings.ORDER_STORE == "sqlalchemy":
        from infrastructure.database import create_tables, dispose_engine
        # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
        if settings.DEBUG:
            await create_tables()
            logger.info("database_initialized", message="Database tables created (development)")
        else:
            logger.info(
                "database_migrations_required",
                message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
            )
    logger.info("application_started", order_store=settings.ORDER_STORE, environment=settings.ENVIRONMENT)

    yield

    await shutdown_dependencies()
    if settings.ORDER_STORE == "sqlalchemy":
        await dispose_engine()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="UPI 代收订单服务：下单、网关回调、UTR 对账",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(orders_routes.router, prefix="/api/v1")
app.include_router(callbacks_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
        }
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
