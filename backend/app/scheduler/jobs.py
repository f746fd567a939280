"""
定时任务调度
"""
import logging
from typing import List, Optional
import uuid
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database.session import AsyncSessionLocal
from app.models.wearable import HourlyRecord
from app.services.summary_processor import SummaryProcessor
from app.config import settings

logger = logging.getLogger(__name__)

# 创建调度器
scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)


async def get_users_with_wearable_data(
    session_factory: Optional[async_sessionmaker] = None,
) -> List[uuid.UUID]:
    """获取所有有可穿戴数据的用户"""
    factory = session_factory or AsyncSessionLocal
    async with factory() as db:
        result = await db.execute(select(HourlyRecord.user_id).distinct())
        return list(result.scalars().all())


@scheduler.scheduled_job(CronTrigger(hour=settings.DAILY_ROLLUP_HOUR, minute=0))
async def daily_rollup_job(session_factory: Optional[async_sessionmaker] = None):
    """
    定时任务: 每天处理每日汇总并刷新相关性模式

    非强制处理，只补齐上次汇总之后的日期；单个用户失败不影响其他用户。
    """
    logger.info("🔄 开始执行定时任务: 每日汇总")
    factory = session_factory or AsyncSessionLocal

    try:
        user_ids = await get_users_with_wearable_data(factory)
        logger.info(f"有可穿戴数据的用户数: {len(user_ids)}")

        success_count = 0
        fail_count = 0

        for user_id in user_ids:
            try:
                async with factory() as db:
                    processor = SummaryProcessor(db)
                    result = await processor.process_daily_indicators(user_id)
                    logger.info(
                        f"用户{user_id}汇总完成: 处理{result['processed']}天, 错误{result['errors']}天"
                    )
                    success_count += 1
            except Exception as e:
                logger.error(f"用户{user_id}汇总失败: {str(e)}")
                fail_count += 1

        logger.info(f"✅ 每日汇总完成: 成功={success_count}, 失败={fail_count}")
        return {"success": success_count, "failed": fail_count}

    except Exception as e:
        logger.error(f"❌ 每日汇总任务失败: {str(e)}")
        return None


def start_scheduler():
    """启动调度器"""
    try:
        scheduler.start()
        logger.info("⏰ 任务调度器启动成功")
        logger.info("📅 已注册定时任务:")
        logger.info(f"  - {settings.DAILY_ROLLUP_HOUR:02d}:00 每日汇总 + 相关性分析")
    except Exception as e:
        logger.error(f"❌ 任务调度器启动失败: {str(e)}")


def shutdown_scheduler():
    """关闭调度器"""
    try:
        scheduler.shutdown()
        logger.info("⏰ 任务调度器已关闭")
    except Exception as e:
        logger.error(f"❌ 任务调度器关闭失败: {str(e)}")
