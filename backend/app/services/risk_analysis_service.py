"""
风险分析数据服务

加载最近24小时数据、相关性模式和用户档案，交给提示词构建器。
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.correlation import MigraineCorrelation
from app.models.user import UserProfile
from app.models.wearable import HourlyRecord
from app.services.prompt_builder import (
    MigraineProfile,
    PatternSummary,
    RiskDataPoint,
    SimulatedSample,
    build_data_summary,
    build_risk_analysis_prompt,
    synthesize_hourly_series,
)
from app.utils.datetime_helper import TzLike, ensure_utc, now_utc

logger = logging.getLogger(__name__)

LOOKBACK_HOURS = 24


class RiskAnalysisService:
    """风险分析服务"""

    def __init__(self, db: AsyncSession, tz: TzLike = None):
        self.db = db
        self.tz = tz

    async def load_recent_data(
        self, user_id: uuid.UUID, now: Optional[datetime] = None
    ) -> List[RiskDataPoint]:
        """[now - 24h, now] 内的记录（按时间升序）"""
        end = ensure_utc(now) if now else now_utc()
        start = end - timedelta(hours=LOOKBACK_HOURS)
        result = await self.db.execute(
            select(HourlyRecord)
            .where(
                and_(
                    HourlyRecord.user_id == user_id,
                    HourlyRecord.timestamp >= start,
                    HourlyRecord.timestamp <= end,
                )
            )
            .order_by(HourlyRecord.timestamp)
        )
        return [RiskDataPoint.from_record(r) for r in result.scalars().all()]

    async def load_patterns(self, user_id: uuid.UUID) -> List[PatternSummary]:
        result = await self.db.execute(
            select(MigraineCorrelation)
            .where(MigraineCorrelation.user_id == user_id)
            .order_by(MigraineCorrelation.pattern_type)
        )
        return [PatternSummary.model_validate(p) for p in result.scalars().all()]

    async def load_profile(self, user_id: uuid.UUID) -> Optional[MigraineProfile]:
        result = await self.db.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        profile = result.scalar_one_or_none()
        return MigraineProfile.model_validate(profile) if profile else None

    async def build_risk_prompt(
        self,
        user_id: uuid.UUID,
        simulated_sample: Optional[SimulatedSample] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        生成风险分析提示词

        Args:
            user_id: 用户ID
            simulated_sample: 模拟指标；提供时用它生成24条逐小时数据，不读取真实记录
            now: 当前时间（默认UTC当前时间）

        Returns:
            {prompt, summary, metadata}
        """
        current = ensure_utc(now) if now else now_utc()
        if simulated_sample is not None:
            wearable_data = synthesize_hourly_series(simulated_sample, current, LOOKBACK_HOURS)
        else:
            wearable_data = await self.load_recent_data(user_id, current)

        patterns = await self.load_patterns(user_id)
        profile = await self.load_profile(user_id)

        prompt = build_risk_analysis_prompt(wearable_data, patterns, profile, tz=self.tz)
        logger.info(
            f"🧠 风险提示词已生成: user={user_id}, points={len(wearable_data)}, "
            f"patterns={len(patterns)}, simulated={simulated_sample is not None}"
        )

        return {
            "prompt": prompt,
            "summary": build_data_summary(wearable_data, patterns, profile),
            "metadata": {
                "generated_at": current.isoformat(),
                "is_simulated": simulated_sample is not None,
                "has_profile": profile is not None,
                "prompt_length": len(prompt),
            },
        }

    async def get_risk_data(
        self, user_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """提示词的原始输入数据"""
        wearable_data = await self.load_recent_data(user_id, now)
        patterns = await self.load_patterns(user_id)
        profile = await self.load_profile(user_id)
        return {
            "wearable_data": wearable_data,
            "patterns": patterns,
            "profile": profile,
        }
