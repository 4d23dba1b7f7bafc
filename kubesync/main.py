"""
FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from kubesync.api.v1.router import api_router
from kubesync.config.settings import settings
from kubesync.core.exceptions import setup_exception_handlers
from kubesync.core.logging import logger
from kubesync.middleware.logging import logging_middleware


def _check_database() -> dict:
    if not settings.DATABASE_URL:
        return {"status": "unconfigured"}
    try:
        from kubesync.config.database import get_engine
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:  # pylint: disable=broad-except
        return {"status": "error", "message": str(e)}


def _check_redis() -> dict:
    try:
        from kubesync.config.redis import get_redis
        get_redis().ping()
        return {"status": "healthy"}
    except Exception as e:  # pylint: disable=broad-except
        return {"status": "error", "message": str(e)}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理 - 启动时检查依赖连接"""
    logger.info("正在检查依赖连接...")
    database = _check_database()
    if database["status"] == "healthy":
        logger.info("✅ 数据库连接正常")
    elif database["status"] == "unconfigured":
        logger.warning("⚠️ 未配置 DATABASE_URL，同步请求需显式提供 database_url")
    else:
        logger.error(f"❌ 数据库连接失败: {database.get('message')}")

    logger.info("🚀 服务器启动完成")
    yield
    logger.info("👋 服务器关闭")


app = FastAPI(
    title="KubeSync API",
    description="多集群 Kubernetes 资源清单同步服务",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# 添加CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 请求日志中间件（记录每个请求的开始、结束、状态码与耗时）
app.middleware("http")(logging_middleware)

app.include_router(api_router, prefix="/api/v1")

# 设置异常处理器
setup_exception_handlers(app)


@app.get("/")
async def root():
    """根路径"""
    return {"message": "KubeSync API", "version": settings.APP_VERSION}


@app.get("/health")
async def health_check():
    """健康检查 - 数据库与 Redis 连接状态"""
    services = {
        "database": _check_database(),
        "redis": _check_redis(),
    }
    healthy = all(s["status"] in ("healthy", "unconfigured") for s in services.values())
    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": settings.APP_VERSION,
        "services": services,
    }
