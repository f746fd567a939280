"""
每日指标聚合

把一天内的每小时记录聚合为统一的指标包，每日汇总与相关性分析共用。
"""
from typing import Dict, Iterable, List, Optional, Sequence, Any

import numpy as np

TREND_INCREASING = "increasing"
TREND_STABLE = "stable"
TREND_DECREASING = "decreasing"

# 趋势判定阈值：后半段均值变化不超过前半段均值的 5% 视为平稳
TREND_TOLERANCE = 0.05

# 单项健康分贡献上限
WELLNESS_CONTRIBUTION_CAP = 25.0


def _values(records: Iterable[Any], attr: str) -> List[float]:
    return [float(v) for v in (getattr(r, attr) for r in records) if v is not None]


def mean(values: Sequence[float]) -> Optional[float]:
    """算术平均，空序列返回 None"""
    if not values:
        return None
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> Optional[float]:
    """总体标准差（除以 n），空序列返回 None"""
    if not values:
        return None
    return float(np.std(values))


def population_variance(values: Sequence[float]) -> float:
    """总体方差，空序列为 0"""
    if not values:
        return 0.0
    return float(np.var(values))


def calculate_trend(values: Sequence[float]) -> str:
    """
    计算趋势

    按下标把序列对半分，比较两段均值。

    Args:
        values: 按时间排序的数值

    Returns:
        increasing / stable / decreasing
    """
    if len(values) < 2:
        return TREND_STABLE

    mid = len(values) // 2
    first_avg = float(np.mean(values[:mid]))
    second_avg = float(np.mean(values[mid:]))
    diff = second_avg - first_avg

    if abs(diff) <= TREND_TOLERANCE * first_avg:
        return TREND_STABLE
    return TREND_INCREASING if diff > 0 else TREND_DECREASING


def aggregate_day(records: Sequence[Any]) -> Dict[str, Any]:
    """
    聚合一天的记录

    Args:
        records: 按时间排序的每小时记录（HourlyRecord 或同名属性对象）

    Returns:
        指标包；某项指标没有观测值时对应字段为 None
    """
    stress = _values(records, "stress_value")
    recovery = _values(records, "recovery_value")
    heart_rate = _values(records, "heart_rate")
    hrv = _values(records, "hrv")
    sleep_efficiency = _values(records, "sleep_efficiency")
    sleep_heart_rate = _values(records, "sleep_heart_rate")
    restless = _values(records, "restless_periods")
    temperature = _values(records, "skin_temperature")

    return {
        "avg_stress": mean(stress),
        "max_stress": max(stress) if stress else None,
        "stress_volatility": population_std(stress),
        "stress_trend": calculate_trend(stress),
        "avg_recovery": mean(recovery),
        "min_recovery": min(recovery) if recovery else None,
        "recovery_trend": calculate_trend(recovery),
        "avg_heart_rate": mean(heart_rate),
        "resting_heart_rate": min(heart_rate) if heart_rate else None,
        "max_heart_rate": max(heart_rate) if heart_rate else None,
        "avg_hrv": mean(hrv),
        "hrv_trend": calculate_trend(hrv),
        "hrv_volatility": population_std(hrv),
        "avg_sleep_efficiency": mean(sleep_efficiency),
        "avg_sleep_heart_rate": mean(sleep_heart_rate),
        "avg_restless_periods": mean(restless),
        "avg_skin_temperature": mean(temperature),
        "temperature_variation": (max(temperature) - min(temperature)) if temperature else None,
        "data_points_count": len(records),
    }


def calculate_wellness_score(bundle: Dict[str, Any]) -> float:
    """
    计算综合健康分

    基础 50 分，压力、恢复、睡眠效率、HRV 各贡献至多 25 分，缺失项跳过，
    总分限制在 [0, 100]。
    """
    score = 50.0

    avg_stress = bundle.get("avg_stress")
    if avg_stress is not None:
        score += min(WELLNESS_CONTRIBUTION_CAP, max(0.0, 30 - avg_stress) / 30 * 25)

    avg_recovery = bundle.get("avg_recovery")
    if avg_recovery is not None:
        score += min(WELLNESS_CONTRIBUTION_CAP, avg_recovery / 100 * 25)

    avg_sleep = bundle.get("avg_sleep_efficiency")
    if avg_sleep is not None:
        score += min(WELLNESS_CONTRIBUTION_CAP, avg_sleep / 100 * 25)

    avg_hrv = bundle.get("avg_hrv")
    if avg_hrv is not None:
        score += min(max((avg_hrv - 20) / 60, 0.0), 1.0) * 25

    return round(min(100.0, max(0.0, score)), 2)


def identify_risk_factors(bundle: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """
    识别风险标签

    Returns:
        [{type, value?, severity}]，无风险返回 None
    """
    factors: List[Dict[str, Any]] = []

    avg_stress = bundle.get("avg_stress")
    if avg_stress is not None and avg_stress > 25:
        factors.append({"type": "high_stress", "value": avg_stress, "severity": "moderate"})
        if avg_stress > 35:
            factors.append({"type": "very_high_stress", "value": avg_stress, "severity": "high"})

    avg_recovery = bundle.get("avg_recovery")
    if avg_recovery is not None and avg_recovery < 30:
        factors.append({"type": "low_recovery", "value": avg_recovery, "severity": "moderate"})

    avg_hrv = bundle.get("avg_hrv")
    if avg_hrv is not None and avg_hrv < 30:
        factors.append({"type": "low_hrv", "value": avg_hrv, "severity": "moderate"})

    avg_sleep = bundle.get("avg_sleep_efficiency")
    if avg_sleep is not None and avg_sleep < 80:
        factors.append({"type": "poor_sleep", "value": avg_sleep, "severity": "moderate"})

    volatility = bundle.get("stress_volatility")
    if volatility is not None and volatility > 5:
        factors.append({"type": "stress_volatility", "value": volatility, "severity": "moderate"})

    if bundle.get("stress_trend") == TREND_INCREASING:
        factors.append({"type": "increasing_stress", "severity": "moderate"})

    if bundle.get("recovery_trend") == TREND_DECREASING:
        factors.append({"type": "decreasing_recovery", "severity": "moderate"})

    return factors or None
