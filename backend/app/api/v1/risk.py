"""
偏头痛风险预测 API

只生成提示词，不调用大模型。
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.session import get_db
from app.api.dependencies import get_current_user
from app.models.user import User
from app.schemas.risk import RiskPromptRequest, RiskPromptResponse, RiskDataResponse
from app.services.risk_analysis_service import RiskAnalysisService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/prompt", response_model=RiskPromptResponse)
async def get_risk_prompt(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """基于最近24小时真实数据生成风险分析提示词"""
    service = RiskAnalysisService(db)
    return await service.build_risk_prompt(current_user.id)


@router.post("/prompt", response_model=RiskPromptResponse)
async def simulate_risk_prompt(
    request: RiskPromptRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """基于模拟指标生成风险分析提示词（24条相同的逐小时数据）"""
    service = RiskAnalysisService(db)
    return await service.build_risk_prompt(current_user.id, simulated_sample=request.sample)


@router.get("/data", response_model=RiskDataResponse)
async def get_risk_data(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """提示词使用的原始数据"""
    service = RiskAnalysisService(db)
    return await service.get_risk_data(current_user.id)
