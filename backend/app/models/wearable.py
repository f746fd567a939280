"""
可穿戴设备数据模型
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, Float, TIMESTAMP, ForeignKey, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from app.database.base import Base, JSONType
from app.utils.datetime_helper import now_utc

if TYPE_CHECKING:
    from app.models.user import User


# 上传会话状态
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


class UploadSession(Base):
    """CSV上传会话（导入回执）"""

    __tablename__ = "upload_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False, comment="原始文件名")
    file_size: Mapped[int] = mapped_column(Integer, default=0, comment="文件大小(字节)")
    source: Mapped[str] = mapped_column(String(50), default="manual_upload", comment="数据来源")

    # 行统计: inserted + updated + skipped + errors = total
    total_rows: Mapped[int] = mapped_column(Integer, default=0)
    inserted_rows: Mapped[int] = mapped_column(Integer, default=0)
    updated_rows: Mapped[int] = mapped_column(Integer, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, default=0)

    field_mapping: Mapped[Optional[dict]] = mapped_column(JSONType, comment="表头 -> 标准字段")
    unrecognized_fields: Mapped[Optional[list]] = mapped_column(JSONType, comment="未识别表头")
    error_details: Mapped[Optional[list]] = mapped_column(JSONType, comment="错误明细(截断)")
    earliest_timestamp: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), comment="最早数据时间"
    )

    status: Mapped[str] = mapped_column(String(20), default=STATUS_PROCESSING, comment="处理状态")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    user: Mapped["User"] = relationship("User", back_populates="upload_sessions")

    def __repr__(self):
        return (
            f"<UploadSession {self.filename} status={self.status} "
            f"total={self.total_rows} inserted={self.inserted_rows}>"
        )


class HourlyRecord(Base):
    """每小时可穿戴数据"""

    __tablename__ = "wearable_data"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    upload_session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("upload_sessions.id", ondelete="CASCADE"), index=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, comment="采样时间(UTC)"
    )

    # 指标
    stress_value: Mapped[Optional[float]] = mapped_column(Float, comment="压力")
    recovery_value: Mapped[Optional[float]] = mapped_column(Float, comment="恢复")
    heart_rate: Mapped[Optional[float]] = mapped_column(Float, comment="心率(bpm)")
    hrv: Mapped[Optional[float]] = mapped_column(Float, comment="心率变异性(ms)")
    sleep_efficiency: Mapped[Optional[float]] = mapped_column(Float, comment="睡眠效率(%)")
    sleep_heart_rate: Mapped[Optional[float]] = mapped_column(Float, comment="睡眠心率(bpm)")
    skin_temperature: Mapped[Optional[float]] = mapped_column(Float, comment="皮肤温度")
    restless_periods: Mapped[Optional[float]] = mapped_column(Float, comment="不安稳次数")

    additional_data: Mapped[Optional[dict]] = mapped_column(JSONType, comment="未识别列")
    source: Mapped[str] = mapped_column(String(50), default="manual_upload", comment="数据来源")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    __table_args__ = (
        UniqueConstraint("user_id", "timestamp", name="uq_wearable_user_timestamp"),
        Index("idx_wearable_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self):
        return f"<HourlyRecord {self.timestamp} stress={self.stress_value} hrv={self.hrv}>"
