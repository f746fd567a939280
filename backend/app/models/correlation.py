"""
偏头痛相关性模式模型
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Float, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from app.database.base import Base, JSONType
from app.utils.datetime_helper import now_utc


class MigraineCorrelation(Base):
    """偏头痛相关性模式"""

    __tablename__ = "migraine_correlations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    pattern_type: Mapped[str] = mapped_column(String(50), nullable=False, comment="模式类型")
    pattern_name: Mapped[str] = mapped_column(String(100), nullable=False, comment="模式名称")
    pattern_definition: Mapped[dict] = mapped_column(
        JSONType, nullable=False, comment="{metric, operator, threshold}"
    )

    correlation_strength: Mapped[float] = mapped_column(Float, comment="相关强度 [-1, 1]")
    confidence_score: Mapped[float] = mapped_column(Float, comment="置信度 [0.1, 0.95]")
    migraine_days_count: Mapped[int] = mapped_column(Integer, default=0)
    total_days_analyzed: Mapped[int] = mapped_column(Integer, default=0)
    avg_value_on_migraine_days: Mapped[Optional[float]] = mapped_column(Float)
    avg_value_on_normal_days: Mapped[Optional[float]] = mapped_column(Float)
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)

    first_detected_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    __table_args__ = (
        UniqueConstraint("user_id", "pattern_type", name="uq_correlation_user_pattern"),
    )

    def __repr__(self):
        return (
            f"<MigraineCorrelation {self.pattern_type} "
            f"r={self.correlation_strength} conf={self.confidence_score}>"
        )
