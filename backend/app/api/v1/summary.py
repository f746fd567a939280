"""
每日汇总与相关性模式 API
"""
import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.session import get_db
from app.api.dependencies import get_current_user
from app.models.user import User
from app.schemas.summary import (
    ProcessSummaryRequest,
    ProcessSummaryResponse,
    SummaryIndicatorResponse,
    CorrelationPatternResponse,
)
from app.services.summary_processor import SummaryProcessor
from app.services.correlation_analyzer import MigraineCorrelationAnalyzer

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/process", response_model=ProcessSummaryResponse)
async def process_summary(
    request: Optional[ProcessSummaryRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    处理每日汇总

    最近一次汇总在缓存时间内且未强制处理时直接返回缓存标记；
    处理完成后会刷新相关性模式。
    """
    force = request.force_reprocess if request else False
    processor = SummaryProcessor(db)
    return await processor.process_with_cache(current_user.id, force=force)


@router.get("", response_model=List[SummaryIndicatorResponse])
async def get_summaries(
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    limit: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取每日汇总（最新在前）"""
    processor = SummaryProcessor(db)
    return await processor.get_summaries(current_user.id, start_date, end_date, limit)


@router.get("/correlations", response_model=List[CorrelationPatternResponse])
async def get_correlations(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取偏头痛相关性模式"""
    analyzer = MigraineCorrelationAnalyzer(db)
    return await analyzer.get_patterns(current_user.id)
