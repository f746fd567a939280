"""
可穿戴数据导入服务

按 (用户, 时间戳) 去重写入每小时记录，并在上传会话上记录逐行统计。
"""
import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.wearable import (
    HourlyRecord,
    UploadSession,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PARTIAL,
    STATUS_PROCESSING,
)
from app.services.csv_parser import FIELD_COLUMNS, ParsedRow, ParseResult, parse_wearable_csv
from app.utils.datetime_helper import TzLike, day_bounds, ensure_utc

logger = logging.getLogger(__name__)


def resolve_status(total_rows: int, error_rows: int) -> str:
    """根据错误行数确定会话最终状态"""
    if total_rows == 0 or error_rows == 0:
        return STATUS_COMPLETED
    if error_rows == total_rows:
        return STATUS_FAILED
    return STATUS_PARTIAL


class WearableService:
    """可穿戴数据导入与查询服务"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_record(
        self, user_id: uuid.UUID, timestamp: datetime
    ) -> Optional[HourlyRecord]:
        result = await self.db.execute(
            select(HourlyRecord).where(
                and_(
                    HourlyRecord.user_id == user_id,
                    HourlyRecord.timestamp == timestamp,
                )
            )
        )
        return result.scalar_one_or_none()

    async def _insert_record(
        self, user_id: uuid.UUID, row: ParsedRow, session_id: uuid.UUID, source: str
    ) -> bool:
        """
        插入新记录

        Returns:
            True 表示插入成功；唯一约束冲突（并发写入）返回 False
        """
        record = HourlyRecord(
            user_id=user_id,
            upload_session_id=session_id,
            timestamp=row.timestamp,
            additional_data=row.additional_data or None,
            source=source,
            **row.metric_values(),
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"并发写入冲突，跳过: user={user_id}, timestamp={row.timestamp}")
            return False
        return True

    async def _merge_record(
        self, record: HourlyRecord, row: ParsedRow, session_id: uuid.UUID, source: str
    ) -> None:
        """用新会话的数据覆盖已有记录，空值保留原值"""
        for column, value in row.metric_values().items():
            if value is not None:
                setattr(record, column, value)
        if row.additional_data:
            record.additional_data = {**(record.additional_data or {}), **row.additional_data}
        record.upload_session_id = session_id
        record.source = source
        await self.db.commit()

    async def ingest(
        self,
        user_id: uuid.UUID,
        parse_result: ParseResult,
        filename: str,
        file_size: int,
    ) -> UploadSession:
        """
        写入解析结果

        Args:
            user_id: 用户ID
            parse_result: CSV解析结果
            filename: 原始文件名
            file_size: 文件大小(字节)

        Returns:
            已结束的上传会话

        Raises:
            OperationalError / InterfaceError: 数据库不可用，会话保持 processing 状态
        """
        upload = UploadSession(
            user_id=user_id,
            filename=filename,
            file_size=file_size,
            source=parse_result.source,
            total_rows=parse_result.total_rows,
            field_mapping=parse_result.field_mapping,
            unrecognized_fields=parse_result.unrecognized_fields,
            status=STATUS_PROCESSING,
        )
        self.db.add(upload)
        await self.db.commit()
        session_id = upload.id

        logger.info(
            f"📥 开始导入: user={user_id}, session={session_id}, file={filename}, "
            f"rows={parse_result.total_rows}"
        )

        inserted = updated = skipped = 0
        errors = len(parse_result.rejected_rows)
        error_details: List[Dict[str, Any]] = list(parse_result.rejected_rows)
        earliest: Optional[datetime] = None

        for row in parse_result.rows:
            if earliest is None or row.timestamp < earliest:
                earliest = row.timestamp

            try:
                existing = await self._find_record(user_id, row.timestamp)
                if existing is None:
                    if await self._insert_record(user_id, row, session_id, parse_result.source):
                        inserted += 1
                    else:
                        skipped += 1
                elif existing.upload_session_id == session_id:
                    # 同一文件内的重复时间戳
                    skipped += 1
                else:
                    await self._merge_record(existing, row, session_id, parse_result.source)
                    updated += 1
            except (OperationalError, InterfaceError):
                logger.error(f"❌ 数据库不可用，导入中止: session={session_id}")
                raise
            except Exception as e:
                await self.db.rollback()
                errors += 1
                error_details.append({"timestamp": row.timestamp.isoformat(), "error": str(e)})
                logger.warning(f"行写入失败: session={session_id}, timestamp={row.timestamp}, error={e}")

        # 回滚会使会话对象过期，重新加载后再更新
        await self.db.refresh(upload)
        upload.inserted_rows = inserted
        upload.updated_rows = updated
        upload.skipped_rows = skipped
        upload.error_rows = errors
        upload.error_details = error_details[: settings.UPLOAD_ERROR_DETAILS_LIMIT] or None
        upload.earliest_timestamp = earliest
        upload.status = resolve_status(upload.total_rows, errors)
        await self.db.commit()
        await self.db.refresh(upload)

        logger.info(
            f"✅ 导入完成: session={session_id}, status={upload.status}, inserted={inserted}, "
            f"updated={updated}, skipped={skipped}, errors={errors}"
        )
        return upload

    async def ingest_csv(
        self,
        user_id: uuid.UUID,
        content: bytes,
        filename: str,
        file_size: Optional[int] = None,
        tz: TzLike = None,
    ) -> UploadSession:
        """
        解析并导入CSV

        Raises:
            ParseError: 文件无法解析，不会产生任何数据库记录
        """
        parse_result = parse_wearable_csv(content, filename, tz=tz)
        return await self.ingest(
            user_id,
            parse_result,
            filename,
            file_size if file_size is not None else len(content),
        )

    # ============ 上传会话管理 ============

    async def list_upload_sessions(
        self, user_id: uuid.UUID, limit: int = 50
    ) -> List[UploadSession]:
        """上传历史（最新在前）"""
        result = await self.db.execute(
            select(UploadSession)
            .where(UploadSession.user_id == user_id)
            .order_by(UploadSession.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_upload_session(
        self, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> Optional[UploadSession]:
        result = await self.db.execute(
            select(UploadSession).where(
                and_(
                    UploadSession.id == session_id,
                    UploadSession.user_id == user_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def delete_upload_session(
        self, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> Optional[int]:
        """
        删除上传会话及其拥有的记录

        Returns:
            删除的记录数；会话不存在返回 None
        """
        upload = await self.get_upload_session(user_id, session_id)
        if upload is None:
            return None

        result = await self.db.execute(
            delete(HourlyRecord).where(
                and_(
                    HourlyRecord.user_id == user_id,
                    HourlyRecord.upload_session_id == session_id,
                )
            )
        )
        deleted_records = result.rowcount or 0
        await self.db.delete(upload)
        await self.db.commit()

        logger.info(f"🗑️ 删除上传会话: session={session_id}, records={deleted_records}")
        return deleted_records

    async def delete_all_upload_sessions(self, user_id: uuid.UUID) -> Dict[str, int]:
        """删除用户全部上传会话和可穿戴记录"""
        records = await self.db.execute(
            delete(HourlyRecord).where(HourlyRecord.user_id == user_id)
        )
        sessions = await self.db.execute(
            delete(UploadSession).where(UploadSession.user_id == user_id)
        )
        await self.db.commit()

        stats = {
            "deleted_sessions": sessions.rowcount or 0,
            "deleted_records": records.rowcount or 0,
        }
        logger.info(f"🗑️ 清空上传数据: user={user_id}, {stats}")
        return stats

    async def cleanup_orphaned_data(self, user_id: uuid.UUID) -> int:
        """删除没有所属上传会话的记录"""
        session_exists = exists(
            select(UploadSession.id).where(UploadSession.id == HourlyRecord.upload_session_id)
        )
        result = await self.db.execute(
            delete(HourlyRecord)
            .where(
                and_(
                    HourlyRecord.user_id == user_id,
                    or_(HourlyRecord.upload_session_id.is_(None), ~session_exists),
                )
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        removed = result.rowcount or 0
        logger.info(f"🧹 清理孤立数据: user={user_id}, removed={removed}")
        return removed

    # ============ 查询 ============

    async def get_records(
        self,
        user_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 1000,
        tz: TzLike = None,
    ) -> List[HourlyRecord]:
        """按本地日期范围查询记录（最新在前）"""
        conditions = [HourlyRecord.user_id == user_id]
        if start_date is not None:
            conditions.append(HourlyRecord.timestamp >= day_bounds(start_date, tz)[0])
        if end_date is not None:
            conditions.append(HourlyRecord.timestamp <= day_bounds(end_date, tz)[1])

        result = await self.db.execute(
            select(HourlyRecord)
            .where(and_(*conditions))
            .order_by(HourlyRecord.timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_statistics(self, user_id: uuid.UUID) -> Dict[str, Any]:
        """可穿戴数据统计"""
        metric_columns = [getattr(HourlyRecord, column) for column in FIELD_COLUMNS.values()]
        result = await self.db.execute(
            select(
                func.count(HourlyRecord.id),
                func.min(HourlyRecord.timestamp),
                func.max(HourlyRecord.timestamp),
                *[func.avg(column) for column in metric_columns],
            ).where(HourlyRecord.user_id == user_id)
        )
        row = result.one()

        sessions = await self.db.execute(
            select(func.count(UploadSession.id)).where(UploadSession.user_id == user_id)
        )

        averages = {
            f"avg_{column}": (float(value) if value is not None else None)
            for column, value in zip(FIELD_COLUMNS.values(), row[3:])
        }
        return {
            "total_records": row[0],
            "upload_sessions": sessions.scalar_one(),
            "earliest_timestamp": ensure_utc(row[1]),
            "latest_timestamp": ensure_utc(row[2]),
            **averages,
        }
