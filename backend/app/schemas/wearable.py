"""
可穿戴数据Schemas
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class UploadSessionResponse(BaseModel):
    """上传会话响应"""

    id: uuid.UUID
    filename: str
    file_size: int
    source: str
    status: str = Field(..., description="processing / completed / partial / failed")
    total_rows: int
    inserted_rows: int
    updated_rows: int
    skipped_rows: int
    error_rows: int
    field_mapping: Optional[Dict[str, str]] = Field(None, description="表头 -> 标准字段")
    unrecognized_fields: Optional[List[str]] = None
    error_details: Optional[List[Dict[str, Any]]] = Field(None, description="错误明细(截断)")
    earliest_timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WearableRecordResponse(BaseModel):
    """每小时记录响应"""

    id: uuid.UUID
    timestamp: datetime
    stress_value: Optional[float]
    recovery_value: Optional[float]
    heart_rate: Optional[float]
    hrv: Optional[float]
    sleep_efficiency: Optional[float]
    sleep_heart_rate: Optional[float]
    skin_temperature: Optional[float]
    restless_periods: Optional[float]
    additional_data: Optional[Dict[str, Any]]
    source: str
    upload_session_id: Optional[uuid.UUID]

    class Config:
        from_attributes = True


class WearableStatisticsResponse(BaseModel):
    """可穿戴数据统计"""

    total_records: int
    upload_sessions: int
    earliest_timestamp: Optional[datetime]
    latest_timestamp: Optional[datetime]
    avg_stress_value: Optional[float]
    avg_recovery_value: Optional[float]
    avg_hrv: Optional[float]
    avg_heart_rate: Optional[float]
    avg_sleep_efficiency: Optional[float]
    avg_sleep_heart_rate: Optional[float]
    avg_skin_temperature: Optional[float]
    avg_restless_periods: Optional[float]


class DeleteSessionResponse(BaseModel):
    """删除上传会话响应"""

    session_id: uuid.UUID
    deleted_records: int


class DeleteAllResponse(BaseModel):
    """清空上传数据响应"""

    deleted_sessions: int
    deleted_records: int


class CleanupResponse(BaseModel):
    """清理孤立数据响应"""

    removed_records: int
