"""
可穿戴数据导入服务测试
"""
import uuid
from datetime import date, datetime

import pytest
import pytz
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models.wearable import HourlyRecord, UploadSession
from app.services.csv_parser import ParseError, ParsedRow, ParseResult
from app.services.wearable_service import WearableService, resolve_status
from app.utils.datetime_helper import ensure_utc

from conftest import add_record


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


def assert_accounting(upload):
    assert (
        upload.inserted_rows + upload.updated_rows + upload.skipped_rows + upload.error_rows
        == upload.total_rows
    )


async def count_records(db, user_id):
    result = await db.execute(
        select(func.count(HourlyRecord.id)).where(HourlyRecord.user_id == user_id)
    )
    return result.scalar_one()


async def get_record(db, user_id, timestamp):
    result = await db.execute(
        select(HourlyRecord).where(
            HourlyRecord.user_id == user_id,
            HourlyRecord.timestamp == timestamp,
        )
    )
    return result.scalar_one()


class TestResolveStatus:

    def test_statuses(self):
        assert resolve_status(0, 0) == "completed"
        assert resolve_status(10, 0) == "completed"
        assert resolve_status(10, 3) == "partial"
        assert resolve_status(10, 10) == "failed"


class TestIngest:

    async def test_dedup_across_sessions(self, db, user):
        service = WearableService(db)
        ts = utc(2025, 1, 1, 10)

        s1 = await service.ingest(
            user.id, ParseResult(rows=[ParsedRow(timestamp=ts, stress_value=20)]), "s1.csv", 10
        )
        s2 = await service.ingest(
            user.id, ParseResult(rows=[ParsedRow(timestamp=ts, recovery_value=80)]), "s2.csv", 10
        )

        assert s1.inserted_rows == 1
        assert s2.inserted_rows == 0
        assert s2.updated_rows == 1
        assert_accounting(s2)

        record = await get_record(db, user.id, ts)
        assert record.stress_value == 20
        assert record.recovery_value == 80
        assert record.upload_session_id == s2.id
        assert await count_records(db, user.id) == 1

    async def test_dedup_within_session(self, db, user):
        service = WearableService(db)
        content = (
            b"timestamp,stress\n"
            b"2025-01-01 10:00,20\n"
            b"2025-01-01 10:00,25\n"
        )
        upload = await service.ingest_csv(user.id, content, "dup.csv", tz="UTC")

        assert upload.inserted_rows == 1
        assert upload.skipped_rows == 1
        assert upload.status == "completed"
        assert_accounting(upload)

        record = await get_record(db, user.id, utc(2025, 1, 1, 10))
        assert record.stress_value == 20

    async def test_session_summary(self, db, user):
        service = WearableService(db)
        content = (
            b"timestamp,stress,steps\n"
            b"2025-01-01 11:00,22,100\n"
            b"2025-01-01 10:00,20,200\n"
        )
        upload = await service.ingest_csv(user.id, content, "oura.csv", tz="UTC")

        assert upload.status == "completed"
        assert upload.source == "oura"
        assert upload.file_size == len(content)
        assert upload.total_rows == 2
        assert upload.field_mapping == {"timestamp": "timestamp", "stress": "stress"}
        assert upload.unrecognized_fields == ["steps"]
        assert ensure_utc(upload.earliest_timestamp) == utc(2025, 1, 1, 10)
        assert upload.error_details is None

    async def test_reupload_updates_without_new_records(self, db, user):
        service = WearableService(db)
        content = b"timestamp,stress\n2025-01-01 10:00,20\n2025-01-01 11:00,21\n"

        await service.ingest_csv(user.id, content, "a.csv", tz="UTC")
        second = await service.ingest_csv(user.id, content, "a.csv", tz="UTC")

        assert second.inserted_rows == 0
        assert second.updated_rows == 2
        assert await count_records(db, user.id) == 2

    async def test_rejected_rows_count_as_errors(self, db, user):
        service = WearableService(db)
        content = (
            b"timestamp,stress\n"
            b"2025-01-01 10:00,20\n"
            b"not-a-date,21\n"
        )
        upload = await service.ingest_csv(user.id, content, "bad.csv", tz="UTC")

        assert upload.inserted_rows == 1
        assert upload.error_rows == 1
        assert upload.status == "partial"
        assert upload.error_details[0]["line"] == 3
        assert_accounting(upload)

    async def test_all_rows_rejected(self, db, user):
        service = WearableService(db)
        content = b"timestamp,stress\nnot-a-date,1\ngarbage,2\n"
        upload = await service.ingest_csv(user.id, content, "bad.csv", tz="UTC")

        assert upload.status == "failed"
        assert upload.error_rows == 2
        assert_accounting(upload)

    async def test_error_details_truncated(self, db, user):
        service = WearableService(db)
        lines = [b"timestamp,stress", b"2025-01-01 10:00,20"]
        lines += [b"not-a-date,%d" % i for i in range(12)]
        upload = await service.ingest_csv(user.id, b"\n".join(lines), "many.csv", tz="UTC")

        assert upload.error_rows == 12
        assert len(upload.error_details) == 10
        assert upload.status == "partial"

    async def test_empty_file(self, db, user):
        service = WearableService(db)
        upload = await service.ingest_csv(user.id, b"", "empty.csv")

        assert upload.status == "completed"
        assert upload.total_rows == 0
        assert_accounting(upload)

    async def test_header_only(self, db, user):
        service = WearableService(db)
        upload = await service.ingest_csv(user.id, b"timestamp,stress\n", "header.csv")

        assert upload.status == "completed"
        assert upload.total_rows == 0
        assert upload.field_mapping == {"timestamp": "timestamp", "stress": "stress"}

    async def test_parse_error_creates_no_session(self, db, user):
        service = WearableService(db)
        with pytest.raises(ParseError):
            await service.ingest_csv(user.id, b"\xff\xfe\x00", "binary.csv")

        result = await db.execute(select(func.count(UploadSession.id)))
        assert result.scalar_one() == 0


class TestIngestFailures:

    async def test_concurrent_insert_is_skipped(self, db, user, monkeypatch):
        user_id = user.id
        service = WearableService(db)

        async def never_found(user_id, timestamp):
            return None

        monkeypatch.setattr(service, "_find_record", never_found)
        ts = utc(2025, 1, 1, 10)
        rows = [ParsedRow(timestamp=ts, stress_value=20), ParsedRow(timestamp=ts, stress_value=30)]

        upload = await service.ingest(user_id, ParseResult(rows=rows), "race.csv", 10)

        assert upload.inserted_rows == 1
        assert upload.skipped_rows == 1
        assert upload.status == "completed"
        assert_accounting(upload)
        assert await count_records(db, user_id) == 1

    async def test_row_error_recorded(self, db, user, monkeypatch):
        user_id = user.id
        service = WearableService(db)
        original = service._insert_record

        async def flaky_insert(user_id, row, session_id, source):
            if row.timestamp.hour == 11:
                raise ValueError("boom")
            return await original(user_id, row, session_id, source)

        monkeypatch.setattr(service, "_insert_record", flaky_insert)
        rows = [
            ParsedRow(timestamp=utc(2025, 1, 1, 10), stress_value=20),
            ParsedRow(timestamp=utc(2025, 1, 1, 11), stress_value=21),
        ]

        upload = await service.ingest(user_id, ParseResult(rows=rows), "flaky.csv", 10)

        assert upload.inserted_rows == 1
        assert upload.error_rows == 1
        assert upload.status == "partial"
        assert upload.error_details == [{"timestamp": utc(2025, 1, 1, 11).isoformat(), "error": "boom"}]
        assert_accounting(upload)

    async def test_storage_unavailable_propagates(self, db, user, monkeypatch):
        user_id = user.id
        service = WearableService(db)

        async def unavailable(user_id, timestamp):
            raise OperationalError("SELECT 1", {}, Exception("connection lost"))

        monkeypatch.setattr(service, "_find_record", unavailable)
        rows = [ParsedRow(timestamp=utc(2025, 1, 1, 10), stress_value=20)]

        with pytest.raises(OperationalError):
            await service.ingest(user_id, ParseResult(rows=rows), "down.csv", 10)

        result = await db.execute(select(UploadSession).where(UploadSession.user_id == user_id))
        upload = result.scalar_one()
        assert upload.status == "processing"


class TestUploadManagement:

    async def test_delete_upload_session(self, db, user):
        service = WearableService(db)
        first = await service.ingest_csv(
            user.id, b"timestamp,stress\n2025-01-01 10:00,20\n2025-01-01 11:00,21\n", "a.csv", tz="UTC"
        )
        await service.ingest_csv(
            user.id, b"timestamp,stress\n2025-01-02 10:00,22\n", "b.csv", tz="UTC"
        )

        deleted = await service.delete_upload_session(user.id, first.id)

        assert deleted == 2
        assert await count_records(db, user.id) == 1
        assert await service.get_upload_session(user.id, first.id) is None
        assert len(await service.list_upload_sessions(user.id)) == 1

    async def test_delete_unknown_session(self, db, user):
        service = WearableService(db)
        assert await service.delete_upload_session(user.id, uuid.uuid4()) is None

    async def test_delete_all(self, db, user):
        service = WearableService(db)
        await service.ingest_csv(user.id, b"timestamp,stress\n2025-01-01 10:00,20\n", "a.csv", tz="UTC")
        await service.ingest_csv(user.id, b"timestamp,stress\n2025-01-02 10:00,20\n", "b.csv", tz="UTC")

        stats = await service.delete_all_upload_sessions(user.id)

        assert stats == {"deleted_sessions": 2, "deleted_records": 2}
        assert await count_records(db, user.id) == 0

    async def test_cleanup_orphaned_data(self, db, user):
        service = WearableService(db)
        await service.ingest_csv(user.id, b"timestamp,stress\n2025-01-01 10:00,20\n", "a.csv", tz="UTC")
        await add_record(db, user.id, utc(2025, 1, 3, 10), stress_value=30)

        removed = await service.cleanup_orphaned_data(user.id)

        assert removed == 1
        assert await count_records(db, user.id) == 1


class TestQueries:

    async def test_get_records_by_date(self, db, user):
        service = WearableService(db)
        await add_record(db, user.id, utc(2025, 1, 1, 10), stress_value=20)
        await add_record(db, user.id, utc(2025, 1, 2, 10), stress_value=30)

        records = await service.get_records(user.id, start_date=date(2025, 1, 2), tz="UTC")

        assert len(records) == 1
        assert records[0].stress_value == 30

    async def test_statistics(self, db, user):
        service = WearableService(db)
        await service.ingest_csv(
            user.id, b"timestamp,stress\n2025-01-01 10:00,20\n2025-01-01 11:00,30\n", "a.csv", tz="UTC"
        )

        stats = await service.get_statistics(user.id)

        assert stats["total_records"] == 2
        assert stats["upload_sessions"] == 1
        assert stats["avg_stress_value"] == 25
        assert stats["avg_hrv"] is None
        assert stats["earliest_timestamp"] == utc(2025, 1, 1, 10)
        assert stats["latest_timestamp"] == utc(2025, 1, 1, 11)
