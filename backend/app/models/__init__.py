"""
数据库模型
"""
from app.models.user import User, UserProfile
from app.models.wearable import UploadSession, HourlyRecord
from app.models.migraine import MigraineDayMarker
from app.models.summary import SummaryIndicator
from app.models.correlation import MigraineCorrelation

__all__ = [
    "User",
    "UserProfile",
    # 可穿戴数据
    "UploadSession",
    "HourlyRecord",
    # 日历标记
    "MigraineDayMarker",
    # 分析结果
    "SummaryIndicator",
    "MigraineCorrelation",
]
