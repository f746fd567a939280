"""
偏头痛日历标记模型
"""
from __future__ import annotations

from datetime import datetime, date
from typing import Optional
from sqlalchemy import Boolean, Integer, Text, Date, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from app.database.base import Base
from app.utils.datetime_helper import now_utc


class MigraineDayMarker(Base):
    """偏头痛日标记（由日历服务写入，分析核心只读）"""

    __tablename__ = "migraine_day_markers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False, comment="本地日期")
    is_migraine_day: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否偏头痛日")
    severity: Mapped[Optional[int]] = mapped_column(Integer, comment="严重程度(1-10)")
    notes: Mapped[Optional[str]] = mapped_column(Text, comment="备注")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_marker_user_date"),)

    def __repr__(self):
        return f"<MigraineDayMarker {self.date} migraine={self.is_migraine_day}>"
