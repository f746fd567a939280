"""
用户模型
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from app.database.base import Base
from app.utils.datetime_helper import now_utc

if TYPE_CHECKING:
    from app.models.wearable import UploadSession


class User(Base):
    """用户表（账号由外部认证服务维护）"""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    nickname: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    # 关联关系
    profile: Mapped[Optional["UserProfile"]] = relationship(
        "UserProfile", back_populates="user", uselist=False
    )
    upload_sessions: Mapped[List["UploadSession"]] = relationship(
        "UploadSession", back_populates="user"
    )

    def __repr__(self):
        return f"<User {self.nickname or self.email or self.id}>"


class UserProfile(Base):
    """偏头痛档案（由外部档案服务写入，分析核心只读）"""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )

    diagnosed_type: Mapped[Optional[str]] = mapped_column(String(100), comment="诊断类型")
    monthly_frequency: Mapped[Optional[int]] = mapped_column(Integer, comment="每月发作次数")
    typical_duration: Mapped[Optional[int]] = mapped_column(Integer, comment="典型持续天数")

    # 症状
    experiences_nausea: Mapped[bool] = mapped_column(Boolean, default=False, comment="恶心")
    experiences_vomit: Mapped[bool] = mapped_column(Boolean, default=False, comment="呕吐")
    experiences_photophobia: Mapped[bool] = mapped_column(Boolean, default=False, comment="畏光")
    experiences_phonophobia: Mapped[bool] = mapped_column(Boolean, default=False, comment="畏声")
    typical_visual_symptoms: Mapped[bool] = mapped_column(Boolean, default=False, comment="视觉先兆")
    typical_sensory_symptoms: Mapped[bool] = mapped_column(Boolean, default=False, comment="感觉先兆")
    family_history: Mapped[bool] = mapped_column(Boolean, default=False, comment="家族史")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=now_utc, onupdate=now_utc
    )

    user: Mapped["User"] = relationship("User", back_populates="profile")

    def __repr__(self):
        return f"<UserProfile user={self.user_id} type={self.diagnosed_type}>"
