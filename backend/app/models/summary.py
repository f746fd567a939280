"""
每日汇总指标模型
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Float, TIMESTAMP, ForeignKey, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from app.database.base import Base, JSONType
from app.utils.datetime_helper import now_utc


class SummaryIndicator(Base):
    """每日汇总指标"""

    __tablename__ = "summary_indicators"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    period_start: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, comment="本地日 00:00 (UTC存储)"
    )
    period_end: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, comment="本地日 23:59:59.999 (UTC存储)"
    )

    # 压力
    avg_stress: Mapped[Optional[float]] = mapped_column(Float)
    max_stress: Mapped[Optional[float]] = mapped_column(Float)
    stress_volatility: Mapped[Optional[float]] = mapped_column(Float, comment="总体标准差")
    stress_trend: Mapped[Optional[str]] = mapped_column(String(20))

    # 恢复
    avg_recovery: Mapped[Optional[float]] = mapped_column(Float)
    min_recovery: Mapped[Optional[float]] = mapped_column(Float)
    recovery_trend: Mapped[Optional[str]] = mapped_column(String(20))

    # 心率
    avg_heart_rate: Mapped[Optional[float]] = mapped_column(Float)
    resting_heart_rate: Mapped[Optional[float]] = mapped_column(Float, comment="当日最低心率")
    max_heart_rate: Mapped[Optional[float]] = mapped_column(Float)

    # HRV
    avg_hrv: Mapped[Optional[float]] = mapped_column(Float)
    hrv_trend: Mapped[Optional[str]] = mapped_column(String(20))
    hrv_volatility: Mapped[Optional[float]] = mapped_column(Float)

    # 睡眠
    avg_sleep_efficiency: Mapped[Optional[float]] = mapped_column(Float)
    avg_sleep_heart_rate: Mapped[Optional[float]] = mapped_column(Float)
    avg_restless_periods: Mapped[Optional[float]] = mapped_column(Float)

    # 体温
    avg_skin_temperature: Mapped[Optional[float]] = mapped_column(Float)
    temperature_variation: Mapped[Optional[float]] = mapped_column(Float, comment="最高-最低")

    overall_wellness_score: Mapped[Optional[float]] = mapped_column(Float, comment="综合健康分(0-100)")
    risk_factors: Mapped[Optional[list]] = mapped_column(JSONType, comment="风险标签")
    data_points_count: Mapped[int] = mapped_column(Integer, default=0)

    processed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    __table_args__ = (
        UniqueConstraint("user_id", "period_start", "period_end", name="uq_summary_user_period"),
        Index("idx_summary_user_period_end", "user_id", "period_end"),
    )

    def __repr__(self):
        return (
            f"<SummaryIndicator {self.period_start} "
            f"wellness={self.overall_wellness_score} points={self.data_points_count}>"
        )
