"""
每日汇总处理测试
"""
from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import func, select

from app.models.summary import SummaryIndicator
from app.scheduler.jobs import daily_rollup_job, get_users_with_wearable_data
from app.services.correlation_analyzer import MigraineCorrelationAnalyzer
from app.services.summary_processor import SummaryProcessor
from app.utils.datetime_helper import day_bounds, ensure_utc, now_utc

from conftest import add_record

TODAY = date(2025, 1, 10)


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


async def count_summaries(db, user_id):
    result = await db.execute(
        select(func.count(SummaryIndicator.id)).where(SummaryIndicator.user_id == user_id)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def hourly_data(db, user):
    """1月8日三条记录，1月9日一条，1月7日没有数据"""
    await add_record(db, user.id, utc(2025, 1, 8, 10), stress_value=20, hrv=40)
    await add_record(db, user.id, utc(2025, 1, 8, 11), stress_value=30, hrv=42)
    await add_record(db, user.id, utc(2025, 1, 8, 12), stress_value=40, hrv=44)
    await add_record(db, user.id, utc(2025, 1, 9, 10), stress_value=25, hrv=50)


class TestResolveWindow:

    def test_lookback_without_history(self, db):
        processor = SummaryProcessor(db, tz="UTC")
        window = processor.resolve_window(TODAY, None)

        assert window[0] == TODAY - timedelta(days=30)
        assert window[-1] == TODAY
        assert len(window) == 31

    def test_resume_after_last_processed(self, db):
        processor = SummaryProcessor(db, tz="UTC")
        last_end = day_bounds(date(2025, 1, 8), "UTC")[1]

        assert processor.resolve_window(TODAY, last_end) == [date(2025, 1, 9), TODAY]

    def test_force_ignores_history(self, db):
        processor = SummaryProcessor(db, tz="UTC")
        last_end = day_bounds(date(2025, 1, 8), "UTC")[1]

        assert len(processor.resolve_window(TODAY, last_end, force=True)) == 31

    def test_up_to_date(self, db):
        processor = SummaryProcessor(db, tz="UTC")
        last_end = day_bounds(TODAY, "UTC")[1]

        assert processor.resolve_window(TODAY, last_end) == []


class TestProcessDailyIndicators:

    async def test_processes_days_with_data(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")
        result = await processor.process_daily_indicators(user.id, today=TODAY)

        assert result["processed"] == 2
        assert result["errors"] == 0
        assert result["processed_days"] == ["2025-01-08", "2025-01-09"]
        assert result["last_processed_date"] == day_bounds(date(2025, 1, 9), "UTC")[1].isoformat()
        assert result["correlation_error"] is None
        assert result["correlations"]["patterns_found"] == 0
        # 没有数据的日期不生成汇总
        assert await count_summaries(db, user.id) == 2

    async def test_second_run_is_noop(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")
        await processor.process_daily_indicators(user.id, today=TODAY)
        result = await processor.process_daily_indicators(user.id, today=TODAY)

        assert result["processed"] == 0
        assert await count_summaries(db, user.id) == 2

    async def test_force_reprocess_updates_rows(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")
        await processor.process_daily_indicators(user.id, today=TODAY)
        result = await processor.process_daily_indicators(user.id, force=True, today=TODAY)

        assert result["processed"] == 2
        assert await count_summaries(db, user.id) == 2

    async def test_summary_values(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")
        await processor.process_daily_indicators(user.id, today=TODAY)

        latest, earliest = await processor.get_summaries(user.id)

        assert ensure_utc(earliest.period_start) == utc(2025, 1, 8)
        assert earliest.avg_stress == 30
        assert earliest.max_stress == 40
        assert earliest.stress_trend == "increasing"
        assert earliest.data_points_count == 3
        assert 0 <= earliest.overall_wellness_score <= 100

        # 单条记录：趋势平稳，波动为0
        assert latest.data_points_count == 1
        assert latest.stress_trend == "stable"
        assert latest.stress_volatility == 0
        assert latest.hrv_trend == "stable"

    async def test_day_error_does_not_stop_window(self, db, user, hourly_data, monkeypatch):
        processor = SummaryProcessor(db, tz="UTC")
        original = processor.calculate_summary_indicators

        async def failing_day(user_id, period_start, period_end):
            if period_start.day == 8:
                raise ValueError("bad day")
            return await original(user_id, period_start, period_end)

        monkeypatch.setattr(processor, "calculate_summary_indicators", failing_day)
        result = await processor.process_daily_indicators(user.id, today=TODAY)

        assert result["processed"] == 1
        assert result["errors"] == 1
        assert result["error_details"] == [{"date": "2025-01-08", "error": "bad day"}]

    async def test_concurrent_insert_updates_existing_summary(self, db, user, hourly_data, monkeypatch):
        user_id = user.id
        processor = SummaryProcessor(db, tz="UTC")
        await processor.process_daily_indicators(user_id, today=TODAY)
        await add_record(db, user_id, utc(2025, 1, 9, 11), stress_value=35, hrv=52)

        # 第一次查询看不到另一个写入者已经提交的行
        original = processor._find_summary
        seen = set()

        async def stale_lookup(user_id, period_start, period_end):
            if period_start not in seen:
                seen.add(period_start)
                return None
            return await original(user_id, period_start, period_end)

        monkeypatch.setattr(processor, "_find_summary", stale_lookup)
        result = await processor.process_daily_indicators(user_id, force=True, today=TODAY)

        assert result["processed"] == 2
        assert result["errors"] == 0
        assert await count_summaries(db, user_id) == 2
        latest = (await processor.get_summaries(user_id))[0]
        assert latest.data_points_count == 2
        assert latest.avg_stress == 30

    async def test_correlation_failure_is_reported(self, db, user, hourly_data, monkeypatch):
        async def failing_analysis(self, user_id):
            raise RuntimeError("analysis down")

        monkeypatch.setattr(MigraineCorrelationAnalyzer, "process_correlations", failing_analysis)
        processor = SummaryProcessor(db, tz="UTC")
        result = await processor.process_daily_indicators(user.id, today=TODAY)

        assert result["processed"] == 2
        assert result["correlations"] is None
        assert result["correlation_error"] == "analysis down"

    async def test_local_day_boundaries(self, db, user):
        # 柏林 3月30日切换夏令时，当天只有23小时
        await add_record(db, user.id, utc(2025, 3, 29, 22, 30), stress_value=20)
        await add_record(db, user.id, utc(2025, 3, 29, 23, 30), stress_value=30)

        processor = SummaryProcessor(db, tz="Europe/Berlin")
        result = await processor.process_daily_indicators(user.id, today=date(2025, 3, 31))

        assert result["processed_days"] == ["2025-03-29", "2025-03-30"]
        latest, earliest = await processor.get_summaries(user.id)
        assert earliest.avg_stress == 20
        assert latest.avg_stress == 30
        assert ensure_utc(latest.period_start) == utc(2025, 3, 29, 23)
        assert ensure_utc(latest.period_end) == utc(2025, 3, 30, 21, 59, 59, 999000)


class TestProcessWithCache:

    async def test_recent_processing_is_cached(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")

        first = await processor.process_with_cache(user.id, today=TODAY)
        second = await processor.process_with_cache(user.id, today=TODAY)

        assert first["cached"] is False
        assert first["processed"] == 2
        assert second["cached"] is True
        assert second["last_processed_date"] == first["last_processed_date"]

    async def test_force_bypasses_cache(self, db, user, hourly_data):
        processor = SummaryProcessor(db, tz="UTC")
        await processor.process_with_cache(user.id, today=TODAY)
        result = await processor.process_with_cache(user.id, force=True, today=TODAY)

        assert result["cached"] is False
        assert result["processed"] == 2

    async def test_no_history_is_not_cached(self, db, user):
        processor = SummaryProcessor(db, tz="UTC")
        result = await processor.process_with_cache(user.id, today=TODAY)

        assert result["cached"] is False
        assert result["processed"] == 0


class TestDailyRollupJob:

    async def test_job_processes_users_with_data(self, db, user, session_factory):
        await add_record(db, user.id, now_utc() - timedelta(hours=1), stress_value=20)

        assert await get_users_with_wearable_data(session_factory) == [user.id]

        result = await daily_rollup_job(session_factory)

        assert result == {"success": 1, "failed": 0}
        assert await count_summaries(db, user.id) >= 1
