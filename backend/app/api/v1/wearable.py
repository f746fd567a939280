"""
可穿戴数据 API
"""
import logging
import uuid
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.session import get_db
from app.api.dependencies import get_current_user
from app.models.user import User
from app.config import settings
from app.schemas.wearable import (
    UploadSessionResponse,
    WearableRecordResponse,
    WearableStatisticsResponse,
    DeleteSessionResponse,
    DeleteAllResponse,
    CleanupResponse,
)
from app.services.csv_parser import ParseError
from app.services.wearable_service import WearableService

router = APIRouter()
logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
}


def _is_csv(file: UploadFile) -> bool:
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    filename = (file.filename or "").lower()
    return content_type in CSV_CONTENT_TYPES or filename.endswith(".csv")


@router.post("/upload", response_model=UploadSessionResponse)
async def upload_wearable_csv(
    file: UploadFile = File(..., description="可穿戴设备导出的CSV"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    上传可穿戴设备CSV

    - 按 (用户, 时间戳) 去重
    - 返回上传会话统计（新增/更新/跳过/错误）
    """
    if not _is_csv(file):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="只支持CSV文件",
        )

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"文件超过 {settings.MAX_UPLOAD_SIZE_MB}MB 限制",
        )

    service = WearableService(db)
    try:
        upload = await service.ingest_csv(
            current_user.id, content, file.filename or "upload.csv", len(content)
        )
    except ParseError as e:
        logger.warning(f"CSV解析失败: user={current_user.id}, file={file.filename}, error={e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"CSV解析失败: {e}",
        )

    return upload


@router.get("", response_model=List[WearableRecordResponse])
async def get_wearable_data(
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    limit: int = Query(1000, ge=1, le=10000),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取可穿戴数据（最新在前）"""
    service = WearableService(db)
    return await service.get_records(current_user.id, start_date, end_date, limit)


@router.get("/statistics", response_model=WearableStatisticsResponse)
async def get_wearable_statistics(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """可穿戴数据统计"""
    service = WearableService(db)
    return await service.get_statistics(current_user.id)


@router.get("/uploads", response_model=List[UploadSessionResponse])
async def list_uploads(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """上传历史"""
    service = WearableService(db)
    return await service.list_upload_sessions(current_user.id, limit)


@router.get("/uploads/{session_id}", response_model=UploadSessionResponse)
async def get_upload(
    session_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """上传会话详情"""
    service = WearableService(db)
    upload = await service.get_upload_session(current_user.id, session_id)
    if upload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="上传记录不存在")
    return upload


@router.delete("/uploads/{session_id}", response_model=DeleteSessionResponse)
async def delete_upload(
    session_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """删除上传会话及其数据"""
    service = WearableService(db)
    deleted = await service.delete_upload_session(current_user.id, session_id)
    if deleted is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="上传记录不存在")
    return DeleteSessionResponse(session_id=session_id, deleted_records=deleted)


@router.delete("/uploads", response_model=DeleteAllResponse)
async def delete_all_uploads(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """删除全部上传会话和可穿戴数据"""
    service = WearableService(db)
    return await service.delete_all_upload_sessions(current_user.id)


@router.post("/cleanup-orphaned", response_model=CleanupResponse)
async def cleanup_orphaned(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """清理没有所属上传会话的数据"""
    service = WearableService(db)
    removed = await service.cleanup_orphaned_data(current_user.id)
    return CleanupResponse(removed_records=removed)
