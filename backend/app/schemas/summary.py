"""
每日汇总与相关性Schemas
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ProcessSummaryRequest(BaseModel):
    """触发每日汇总"""

    force_reprocess: bool = Field(False, description="忽略缓存并重新处理回溯窗口")


class ProcessSummaryResponse(BaseModel):
    """每日汇总处理结果"""

    cached: bool
    message: str
    last_processed_date: Optional[str] = None
    processed: int = 0
    errors: int = 0
    processed_days: List[str] = []
    error_details: List[Dict[str, str]] = []
    correlations: Optional[Dict[str, Any]] = None
    correlation_error: Optional[str] = None


class SummaryIndicatorResponse(BaseModel):
    """每日汇总指标"""

    id: uuid.UUID
    period_start: datetime
    period_end: datetime
    avg_stress: Optional[float]
    max_stress: Optional[float]
    stress_volatility: Optional[float]
    stress_trend: Optional[str]
    avg_recovery: Optional[float]
    min_recovery: Optional[float]
    recovery_trend: Optional[str]
    avg_heart_rate: Optional[float]
    resting_heart_rate: Optional[float]
    max_heart_rate: Optional[float]
    avg_hrv: Optional[float]
    hrv_trend: Optional[str]
    hrv_volatility: Optional[float]
    avg_sleep_efficiency: Optional[float]
    avg_sleep_heart_rate: Optional[float]
    avg_restless_periods: Optional[float]
    avg_skin_temperature: Optional[float]
    temperature_variation: Optional[float]
    overall_wellness_score: Optional[float] = Field(None, description="综合健康分(0-100)")
    risk_factors: Optional[List[Dict[str, Any]]]
    data_points_count: int
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True


class CorrelationPatternResponse(BaseModel):
    """偏头痛相关性模式"""

    id: uuid.UUID
    pattern_type: str
    pattern_name: str
    pattern_definition: Dict[str, Any]
    correlation_strength: float = Field(..., description="相关强度 [-1, 1]")
    confidence_score: float = Field(..., description="置信度 [0.1, 0.95]")
    migraine_days_count: int
    total_days_analyzed: int
    avg_value_on_migraine_days: Optional[float]
    avg_value_on_normal_days: Optional[float]
    threshold_value: Optional[float]
    first_detected_at: Optional[datetime]
    last_updated_at: Optional[datetime]

    class Config:
        from_attributes = True
