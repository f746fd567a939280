"""手动重新处理每日汇总、刷新相关性模式并输出风险提示词

使用方法:
    USER_ID=your-user-id python scripts/manual_process.py
"""
import asyncio
import sys
import os
import uuid

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database.session import AsyncSessionLocal
from app.services.summary_processor import SummaryProcessor
from app.services.risk_analysis_service import RiskAnalysisService

# 从环境变量读取用户ID
USER_ID = os.environ.get("USER_ID", "")


async def process_and_build_prompt():
    if not USER_ID:
        print("错误: 请设置 USER_ID 环境变量")
        print("使用方法: USER_ID=your-user-id python scripts/manual_process.py")
        sys.exit(1)

    user_id = uuid.UUID(USER_ID)

    async with AsyncSessionLocal() as session:
        # 1. 强制重新处理每日汇总（会顺带刷新相关性模式）
        print("="*60)
        print("1. 重新处理每日汇总...")
        print("="*60)
        processor = SummaryProcessor(session)
        result = await processor.process_daily_indicators(user_id, force=True)
        print(f"处理天数: {result['processed']}, 错误: {result['errors']}")
        correlations = result["correlations"] or {}
        print(f"相关性模式: {correlations.get('patterns_found', 0)}")
        if result["correlation_error"]:
            print(f"相关性分析失败: {result['correlation_error']}")

        # 2. 生成风险分析提示词
        print("\n" + "="*60)
        print("2. 生成风险分析提示词...")
        print("="*60)
        risk_service = RiskAnalysisService(session)
        prompt = await risk_service.build_risk_prompt(user_id)
        print(prompt["prompt"])

        print("\n✅ 完成！")

if __name__ == "__main__":
    asyncio.run(process_and_build_prompt())
