"""
FastAPI主应用
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database.session import engine
from app.database.base import Base
from app import models  # noqa: F401  注册全部模型

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} 启动中...")

    # 创建数据库表（仅开发环境，生产使用Alembic）
    if settings.DEBUG:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("📊 数据库表创建完成（开发模式）")

    # 启动任务调度器
    from app.scheduler.jobs import start_scheduler
    start_scheduler()

    logger.info(f"✅ {settings.APP_NAME} 启动成功！")
    logger.info(f"📍 API文档: http://{settings.HOST}:{settings.PORT}/docs")

    yield

    # 关闭
    logger.info(f"👋 {settings.APP_NAME} 关闭中...")

    from app.scheduler.jobs import shutdown_scheduler
    shutdown_scheduler()

    # 关闭数据库连接
    await engine.dispose()
    logger.info("✅ 数据库连接已关闭")


# 创建FastAPI应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="偏头痛追踪 - 可穿戴数据导入、每日汇总、相关性分析与风险提示词",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS if not settings.DEBUG else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 健康检查端点
@app.get("/")
async def root():
    """根路径 - API信息"""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "ok"}


# 注册路由
from app.api.v1 import wearable, summary, risk

app.include_router(wearable.router, prefix="/api/v1/wearable", tags=["可穿戴数据"])
app.include_router(summary.router, prefix="/api/v1/summary", tags=["每日汇总"])
app.include_router(risk.router, prefix="/api/v1/risk-prediction", tags=["风险预测"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
