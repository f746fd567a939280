"""
偏头痛风险分析提示词构建

把最近24小时的可穿戴数据、历史相关性模式和用户档案组装成给大模型的提示词。
纯函数，不做任何I/O；相同输入输出逐字节一致。
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from app.utils.datetime_helper import TzLike, ensure_utc, to_local

RECENT_HOURS_SHOWN = 6
MAX_PATTERNS_SHOWN = 10
PATTERN_CORRELATION_FLOOR = 0.1
STRONG_CORRELATION = 0.3
MODERATE_CORRELATION = 0.15

NOT_AVAILABLE = "N/A"
NOT_SPECIFIED = "Not specified"

NO_WEARABLE_DATA = "No recent wearable data available."
NO_PATTERNS = "No historical migraine correlation patterns identified yet."
NO_SIGNIFICANT_PATTERNS = "No significant correlation patterns found."
NO_PROFILE = "No user profile information available."

PROMPT_TITLE = """# Migraine Risk Analysis Request

You are an expert migraine specialist analyzing wearable device data to predict migraine risk. Based on the following information, provide a comprehensive 12-hour migraine risk assessment."""

PROMPT_INSTRUCTIONS = """## Instructions

Please analyze the above data and provide:

1. **Risk Level (0-100%):** Overall migraine probability in the next 12 hours
2. **Risk Category:** Low (0-25%), Moderate (25-50%), High (50-75%), Very High (75-100%)
3. **Key Risk Factors:** List the top 3-5 metrics or patterns that are contributing to the risk
4. **Trend Analysis:** How current metrics compare to the user's historical migraine patterns
5. **Recommendations:** Specific preventive actions the user should consider
6. **Confidence Level:** How confident you are in this assessment (Low/Medium/High)

Please provide a clear, actionable analysis that a migraine sufferer can understand and act upon. Focus on comparing current metrics to the user's historical patterns that have correlated with migraines.

Format your response in a clear, structured way with sections for each of the above points."""


class RiskDataPoint(BaseModel):
    """提示词使用的单条每小时数据"""

    timestamp: datetime
    stress: Optional[float] = None
    recovery: Optional[float] = None
    hrv: Optional[float] = None
    heart_rate: Optional[float] = None
    sleep_efficiency: Optional[float] = None
    skin_temperature: Optional[float] = None

    @classmethod
    def from_record(cls, record: Any) -> "RiskDataPoint":
        """从 HourlyRecord 转换"""
        return cls(
            timestamp=ensure_utc(record.timestamp),
            stress=record.stress_value,
            recovery=record.recovery_value,
            hrv=record.hrv,
            heart_rate=record.heart_rate,
            sleep_efficiency=record.sleep_efficiency,
            skin_temperature=record.skin_temperature,
        )


class PatternSummary(BaseModel):
    """提示词使用的相关性模式"""

    model_config = ConfigDict(from_attributes=True)

    pattern_type: str
    pattern_name: str
    correlation_strength: Optional[float] = None
    confidence_score: Optional[float] = None
    migraine_days_count: int = 0
    total_days_analyzed: int = 0
    avg_value_on_migraine_days: Optional[float] = None
    avg_value_on_normal_days: Optional[float] = None


class MigraineProfile(BaseModel):
    """提示词使用的偏头痛档案"""

    model_config = ConfigDict(from_attributes=True)

    diagnosed_type: Optional[str] = None
    monthly_frequency: Optional[int] = None
    typical_duration: Optional[int] = None
    experiences_nausea: bool = False
    experiences_vomit: bool = False
    experiences_photophobia: bool = False
    experiences_phonophobia: bool = False
    typical_visual_symptoms: bool = False
    typical_sensory_symptoms: bool = False
    family_history: bool = False


class SimulatedSample(BaseModel):
    """模拟的单点指标（用于生成24小时模拟数据）"""

    stress: Optional[float] = None
    recovery: Optional[float] = None
    hrv: Optional[float] = None
    heart_rate: Optional[float] = None
    sleep_efficiency: Optional[float] = None
    skin_temperature: Optional[float] = None


# ============ 数值格式化 ============

def _format(value: Optional[float], places: str) -> str:
    if value is None:
        return NOT_AVAILABLE
    rounded = Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    return str(rounded)


def format_decimal(value: Optional[float]) -> str:
    """保留一位小数（四舍五入），空值为 N/A"""
    return _format(value, "0.1")


def format_integer(value: Optional[float]) -> str:
    """取整（四舍五入），空值为 N/A"""
    return _format(value, "1")


def format_hour(timestamp: datetime, tz: TzLike = None) -> str:
    """本地时间的小时标记，如 2025-01-01 10:00"""
    return to_local(timestamp, tz).strftime("%Y-%m-%d %H:00")


def _average(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


# ============ 各段落 ============

def format_user_profile(profile: Optional[MigraineProfile]) -> str:
    """用户档案段落"""
    if profile is None:
        return NO_PROFILE

    frequency = f"{profile.monthly_frequency} per month" if profile.monthly_frequency else NOT_SPECIFIED
    duration = f"{profile.typical_duration} days" if profile.typical_duration else NOT_SPECIFIED

    symptoms = []
    if profile.experiences_nausea:
        symptoms.append("nausea")
    if profile.experiences_vomit:
        symptoms.append("vomiting")
    if profile.experiences_photophobia:
        symptoms.append("light sensitivity")
    if profile.experiences_phonophobia:
        symptoms.append("sound sensitivity")
    if profile.typical_visual_symptoms:
        symptoms.append("visual aura")
    if profile.typical_sensory_symptoms:
        symptoms.append("sensory aura")

    lines = [
        "## User Profile & Migraine History",
        "",
        f"**Migraine Type:** {profile.diagnosed_type or NOT_SPECIFIED}",
        f"**Typical Frequency:** {frequency}",
        f"**Typical Duration:** {duration}",
        f"**Common Symptoms:** {', '.join(symptoms) if symptoms else 'None specified'}",
        f"**Family History:** {'Yes' if profile.family_history else 'No'}",
    ]
    return "\n".join(lines)


def format_wearable_data(
    wearable_data: Optional[Sequence[RiskDataPoint]], tz: TzLike = None
) -> str:
    """最近24小时可穿戴数据段落"""
    if not wearable_data:
        return NO_WEARABLE_DATA

    entries = sorted(wearable_data, key=lambda d: ensure_utc(d.timestamp))

    stress = [d.stress for d in entries if d.stress is not None]
    recovery = [d.recovery for d in entries if d.recovery is not None]
    hrv = [d.hrv for d in entries if d.hrv is not None]
    heart_rate = [d.heart_rate for d in entries if d.heart_rate is not None]

    lines = [
        "## Last 24 Hours Wearable Data Summary",
        "",
        "**Overall Metrics (Last 24 Hours):**",
        f"- Average Stress Level: {format_decimal(_average(stress))} "
        f"(Max: {format_decimal(max(stress) if stress else None)})",
        f"- Average Recovery Score: {format_decimal(_average(recovery))} "
        f"(Min: {format_decimal(min(recovery) if recovery else None)})",
        f"- Average Heart Rate Variability (HRV): {format_decimal(_average(hrv))} ms",
        f"- Average Heart Rate: {format_integer(_average(heart_rate))} bpm",
        f"- Total Data Points: {len(entries)}",
        "",
        f"**Recent Hourly Trends (Last {RECENT_HOURS_SHOWN} Hours):**",
    ]
    for entry in entries[-RECENT_HOURS_SHOWN:]:
        lines.append(
            f"- {format_hour(entry.timestamp, tz)}: "
            f"Stress={format_decimal(entry.stress)}, "
            f"Recovery={format_decimal(entry.recovery)}, "
            f"HRV={format_decimal(entry.hrv)}ms, "
            f"HR={format_integer(entry.heart_rate)}bpm"
        )
    return "\n".join(lines)


def select_significant_patterns(
    patterns: Optional[Sequence[PatternSummary]],
) -> List[PatternSummary]:
    """筛选 |r| > 0.1 的模式，按 |r| 降序取前10"""
    significant = [
        p for p in patterns or []
        if p.correlation_strength is not None
        and abs(p.correlation_strength) > PATTERN_CORRELATION_FLOOR
    ]
    significant.sort(key=lambda p: (-abs(p.correlation_strength), p.pattern_type))
    return significant[:MAX_PATTERNS_SHOWN]


def effect_size_label(correlation: float) -> str:
    strength = abs(correlation)
    if strength >= STRONG_CORRELATION:
        return "strong"
    if strength >= MODERATE_CORRELATION:
        return "moderate"
    return "weak"


def format_correlation_patterns(patterns: Optional[Sequence[PatternSummary]]) -> str:
    """历史相关性模式段落"""
    if not patterns:
        return NO_PATTERNS

    significant = select_significant_patterns(patterns)
    if not significant:
        return NO_SIGNIFICANT_PATTERNS

    top = significant[0]
    lines = [
        "## Historical Migraine Correlation Patterns",
        "",
        f"Based on analysis of {top.total_days_analyzed} days of data with "
        f"{top.migraine_days_count} confirmed migraine days:",
        "",
    ]
    for p in significant:
        direction = "higher" if p.correlation_strength > 0 else "lower"
        lines.append(
            f"- **{p.pattern_name}** ({effect_size_label(p.correlation_strength)} correlation): "
            f"On migraine days, this metric is typically {direction} "
            f"(avg: {format_decimal(p.avg_value_on_migraine_days)} vs normal: "
            f"{format_decimal(p.avg_value_on_normal_days)}). "
            f"Based on {p.migraine_days_count} migraine days analyzed."
        )
    return "\n".join(lines)


# ============ 入口 ============

def build_risk_analysis_prompt(
    wearable_data: Optional[Sequence[RiskDataPoint]],
    patterns: Optional[Sequence[PatternSummary]],
    profile: Optional[MigraineProfile],
    tz: TzLike = None,
) -> str:
    """
    构建完整的风险分析提示词

    Args:
        wearable_data: 最近24小时数据
        patterns: 相关性模式
        profile: 用户档案（可为空）
        tz: 小时标记使用的时区（默认本地日历时区）

    Returns:
        提示词文本
    """
    sections = [
        PROMPT_TITLE,
        format_user_profile(profile),
        format_wearable_data(wearable_data, tz),
        format_correlation_patterns(patterns),
        PROMPT_INSTRUCTIONS,
    ]
    return "\n\n".join(sections)


def build_data_summary(
    wearable_data: Optional[Sequence[RiskDataPoint]],
    patterns: Optional[Sequence[PatternSummary]],
    profile: Optional[MigraineProfile],
) -> Dict[str, Any]:
    """提示词输入的概要（用于前端展示）"""
    entries = sorted(wearable_data or [], key=lambda d: ensure_utc(d.timestamp))
    return {
        "has_wearable_data": bool(entries),
        "data_points": len(entries),
        "pattern_count": len(patterns or []),
        "migraine_type": (profile.diagnosed_type if profile else None) or "Unknown",
        "time_range": {
            "start": ensure_utc(entries[0].timestamp).isoformat(),
            "end": ensure_utc(entries[-1].timestamp).isoformat(),
        } if entries else None,
    }


def synthesize_hourly_series(
    sample: SimulatedSample, now: datetime, hours: int = 24
) -> List[RiskDataPoint]:
    """用单点指标生成截止到 now 的逐小时模拟数据"""
    end = ensure_utc(now)
    return [
        RiskDataPoint(timestamp=end - timedelta(hours=offset), **sample.model_dump())
        for offset in range(hours - 1, -1, -1)
    ]
