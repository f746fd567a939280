"""
风险分析Schemas
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from app.services.prompt_builder import (
    MigraineProfile,
    PatternSummary,
    RiskDataPoint,
    SimulatedSample,
)


class RiskPromptRequest(BaseModel):
    """使用模拟指标生成提示词"""

    sample: SimulatedSample


class RiskPromptResponse(BaseModel):
    """风险分析提示词"""

    prompt: str
    summary: Dict[str, Any]
    metadata: Dict[str, Any]


class RiskDataResponse(BaseModel):
    """提示词原始输入"""

    wearable_data: List[RiskDataPoint]
    patterns: List[PatternSummary]
    profile: Optional[MigraineProfile]
