"""
日期时间辅助函数

存储层统一使用 UTC；日历日（每日汇总、偏头痛标记）按配置的本地时区划分。
"""
from datetime import datetime, date, time, timedelta, tzinfo
from typing import Iterator, Optional, Tuple, Union
import pytz

from app.config import settings

# 本地日历时区
LOCAL_TZ = pytz.timezone(settings.TIMEZONE)

TzLike = Union[str, tzinfo, None]


def get_tz(tz: TzLike = None) -> tzinfo:
    """解析时区参数，默认返回本地日历时区"""
    if tz is None:
        return LOCAL_TZ
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def now_utc() -> datetime:
    """获取当前UTC时间"""
    return datetime.now(pytz.utc)


def now_local(tz: TzLike = None) -> datetime:
    """获取当前本地时间"""
    return datetime.now(get_tz(tz))


def today_local(tz: TzLike = None) -> date:
    """获取当前本地日期"""
    return now_local(tz).date()


def localize(naive: datetime, tz: TzLike = None) -> datetime:
    """把无时区的时间解释为本地时间"""
    zone = get_tz(tz)
    if hasattr(zone, "localize"):
        return zone.localize(naive)
    return naive.replace(tzinfo=zone)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    统一转换为带时区的UTC时间

    SQLite 读回的时间不带时区，按 UTC 处理。
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.utc)
    return dt.astimezone(pytz.utc)


def to_local(dt: datetime, tz: TzLike = None) -> datetime:
    """UTC时间转本地时间"""
    return ensure_utc(dt).astimezone(get_tz(tz))


def local_date_key(dt: datetime, tz: TzLike = None) -> date:
    """时间点所属的本地日历日"""
    return to_local(dt, tz).date()


def day_bounds(day: date, tz: TzLike = None) -> Tuple[datetime, datetime]:
    """
    本地日历日的起止时间

    Args:
        day: 本地日期
        tz: 时区（默认本地日历时区）

    Returns:
        (00:00:00.000, 23:59:59.999) 对应的UTC时间
    """
    start = localize(datetime.combine(day, time.min), tz)
    end = localize(datetime.combine(day, time(23, 59, 59, 999000)), tz)
    return start.astimezone(pytz.utc), end.astimezone(pytz.utc)


def date_range(start: date, end: date) -> Iterator[date]:
    """按天遍历 [start, end]"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
