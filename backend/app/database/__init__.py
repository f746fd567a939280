"""
数据库配置和会话管理
"""

from app.database.session import get_db, engine
from app.database.base import Base, JSONType

__all__ = ["get_db", "engine", "Base", "JSONType"]
