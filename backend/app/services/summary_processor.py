"""
每日汇总处理

把每小时记录按本地日历日聚合为汇总指标并写入 summary_indicators，
处理完成后触发相关性分析。
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.summary import SummaryIndicator
from app.models.wearable import HourlyRecord
from app.services.correlation_analyzer import MigraineCorrelationAnalyzer
from app.services.daily_metrics import (
    aggregate_day,
    calculate_wellness_score,
    identify_risk_factors,
)
from app.utils.datetime_helper import (
    TzLike,
    date_range,
    day_bounds,
    ensure_utc,
    local_date_key,
    now_utc,
    today_local,
)

logger = logging.getLogger(__name__)


class DayAggregationError(Exception):
    """单日汇总失败"""

    def __init__(self, day: date, message: str):
        super().__init__(f"{day.isoformat()}: {message}")
        self.day = day


class SummaryProcessor:
    """每日汇总服务"""

    def __init__(self, db: AsyncSession, tz: TzLike = None):
        self.db = db
        self.tz = tz

    async def calculate_summary_indicators(
        self, user_id: uuid.UUID, period_start: datetime, period_end: datetime
    ) -> Optional[Dict[str, Any]]:
        """
        计算时间段内的汇总指标

        Args:
            user_id: 用户ID
            period_start: 开始时间
            period_end: 结束时间（含）

        Returns:
            指标字典，无数据返回 None
        """
        result = await self.db.execute(
            select(HourlyRecord)
            .where(
                and_(
                    HourlyRecord.user_id == user_id,
                    HourlyRecord.timestamp >= period_start,
                    HourlyRecord.timestamp <= period_end,
                )
            )
            .order_by(HourlyRecord.timestamp)
        )
        records = result.scalars().all()
        if not records:
            return None

        indicators = aggregate_day(records)
        indicators["overall_wellness_score"] = calculate_wellness_score(indicators)
        indicators["risk_factors"] = identify_risk_factors(indicators)
        return indicators

    async def _find_summary(
        self, user_id: uuid.UUID, period_start: datetime, period_end: datetime
    ) -> Optional[SummaryIndicator]:
        result = await self.db.execute(
            select(SummaryIndicator).where(
                and_(
                    SummaryIndicator.user_id == user_id,
                    SummaryIndicator.period_start == period_start,
                    SummaryIndicator.period_end == period_end,
                )
            )
        )
        return result.scalar_one_or_none()

    async def _update_summary(
        self, summary: SummaryIndicator, indicators: Dict[str, Any]
    ) -> SummaryIndicator:
        for key, value in indicators.items():
            setattr(summary, key, value)
        summary.processed_at = now_utc()
        await self.db.commit()
        return summary

    async def _save_indicators(
        self,
        user_id: uuid.UUID,
        period_start: datetime,
        period_end: datetime,
        indicators: Dict[str, Any],
    ) -> SummaryIndicator:
        """按 (用户, 开始, 结束) 写入汇总；并发插入冲突时改为更新已有行"""
        existing = await self._find_summary(user_id, period_start, period_end)
        if existing is not None:
            return await self._update_summary(existing, indicators)

        summary = SummaryIndicator(
            user_id=user_id,
            period_start=period_start,
            period_end=period_end,
            processed_at=now_utc(),
            **indicators,
        )
        self.db.add(summary)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"汇总并发写入冲突，改为更新: user={user_id}, period_start={period_start}")
            existing = await self._find_summary(user_id, period_start, period_end)
            if existing is None:
                raise
            return await self._update_summary(existing, indicators)
        return summary

    async def _process_day(self, user_id: uuid.UUID, day: date) -> Optional[datetime]:
        """
        处理单日

        Returns:
            写入的 period_end；当天没有数据返回 None

        Raises:
            DayAggregationError: 聚合或写入失败
        """
        period_start, period_end = day_bounds(day, self.tz)
        try:
            indicators = await self.calculate_summary_indicators(user_id, period_start, period_end)
            if indicators is None:
                return None
            await self._save_indicators(user_id, period_start, period_end, indicators)
        except (OperationalError, InterfaceError):
            raise
        except Exception as e:
            await self.db.rollback()
            raise DayAggregationError(day, str(e)) from e
        return period_end

    async def get_last_processed_end(self, user_id: uuid.UUID) -> Optional[datetime]:
        result = await self.db.execute(
            select(func.max(SummaryIndicator.period_end)).where(
                SummaryIndicator.user_id == user_id
            )
        )
        return ensure_utc(result.scalar_one_or_none())

    async def get_last_processed_at(self, user_id: uuid.UUID) -> Optional[datetime]:
        result = await self.db.execute(
            select(func.max(SummaryIndicator.processed_at)).where(
                SummaryIndicator.user_id == user_id
            )
        )
        return ensure_utc(result.scalar_one_or_none())

    def resolve_window(
        self, today: date, last_end: Optional[datetime], force: bool = False
    ) -> List[date]:
        """
        计算待处理的日期窗口

        强制处理或没有历史汇总时回溯 ROLLUP_LOOKBACK_DAYS 天，
        否则从最后一次汇总的次日开始。
        """
        if force or last_end is None:
            start = today - timedelta(days=settings.ROLLUP_LOOKBACK_DAYS)
        else:
            start = local_date_key(last_end, self.tz) + timedelta(days=1)
        return list(date_range(start, today))

    async def process_daily_indicators(
        self,
        user_id: uuid.UUID,
        force: bool = False,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        处理每日汇总

        Args:
            user_id: 用户ID
            force: 是否忽略已处理记录，重新处理回溯窗口
            today: 窗口结束日期（默认本地今天）

        Returns:
            {processed, errors, processed_days, error_details, last_processed_date,
             correlations, correlation_error}
        """
        today = today or today_local(self.tz)
        last_end = await self.get_last_processed_end(user_id)
        window = self.resolve_window(today, last_end, force)

        logger.info(
            f"🔄 开始每日汇总: user={user_id}, force={force}, "
            f"window={window[0] if window else None}~{today}"
        )

        processed = 0
        processed_days: List[str] = []
        error_details: List[Dict[str, str]] = []
        last_processed = last_end

        for day in window:
            try:
                period_end = await self._process_day(user_id, day)
            except DayAggregationError as e:
                error_details.append({"date": e.day.isoformat(), "error": str(e.__cause__ or e)})
                logger.error(f"❌ 每日汇总失败: user={user_id}, {e}")
                continue
            if period_end is None:
                continue
            processed += 1
            processed_days.append(day.isoformat())
            if last_processed is None or period_end > last_processed:
                last_processed = period_end

        correlations = None
        correlation_error = None
        try:
            analyzer = MigraineCorrelationAnalyzer(self.db, tz=self.tz)
            correlations = await analyzer.process_correlations(user_id)
        except (OperationalError, InterfaceError):
            raise
        except Exception as e:
            await self.db.rollback()
            correlation_error = str(e)
            logger.error(f"❌ 相关性分析失败: user={user_id}, error={e}")

        logger.info(
            f"✅ 每日汇总完成: user={user_id}, processed={processed}, errors={len(error_details)}"
        )
        return {
            "processed": processed,
            "errors": len(error_details),
            "processed_days": processed_days,
            "error_details": error_details,
            "last_processed_date": last_processed.isoformat() if last_processed else None,
            "correlations": correlations,
            "correlation_error": correlation_error,
        }

    async def process_with_cache(
        self,
        user_id: uuid.UUID,
        force: bool = False,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        带缓存的每日汇总

        非强制处理且最近一次汇总在 SUMMARY_CACHE_HOURS 内时直接返回缓存标记。
        """
        if not force:
            last_processed_at = await self.get_last_processed_at(user_id)
            cache_window = timedelta(hours=settings.SUMMARY_CACHE_HOURS)
            if last_processed_at and now_utc() - last_processed_at < cache_window:
                last_end = await self.get_last_processed_end(user_id)
                logger.info(f"使用缓存的每日汇总: user={user_id}, processed_at={last_processed_at}")
                return {
                    "cached": True,
                    "last_processed_date": last_end.isoformat() if last_end else None,
                    "message": f"数据已在 {settings.SUMMARY_CACHE_HOURS} 小时内处理过",
                }

        result = await self.process_daily_indicators(user_id, force=force, today=today)
        return {
            "cached": False,
            "message": f"已处理 {result['processed']} 天的数据",
            **result,
        }

    async def get_summaries(
        self,
        user_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 30,
    ) -> List[SummaryIndicator]:
        """查询每日汇总（最新在前）"""
        conditions = [SummaryIndicator.user_id == user_id]
        if start_date is not None:
            conditions.append(SummaryIndicator.period_start >= day_bounds(start_date, self.tz)[0])
        if end_date is not None:
            conditions.append(SummaryIndicator.period_end <= day_bounds(end_date, self.tz)[1])

        result = await self.db.execute(
            select(SummaryIndicator)
            .where(and_(*conditions))
            .order_by(SummaryIndicator.period_start.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
