"""
Pytest配置和fixtures

每个测试使用独立的内存 SQLite 数据库（aiosqlite），测试之间互不影响。
"""
import uuid
from datetime import datetime
from typing import Optional

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database.base import Base
from app.database.session import build_session_factory
from app.models.migraine import MigraineDayMarker
from app.models.user import User
from app.models.wearable import HourlyRecord


@pytest_asyncio.fixture
async def engine():
    """内存数据库引擎"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(db):
    """测试用户"""
    user = User(email=f"test_{uuid.uuid4()}@example.com", nickname="Test User")
    db.add(user)
    await db.commit()
    return user


async def add_record(db, user_id, timestamp: datetime, upload_session_id: Optional[uuid.UUID] = None, **metrics):
    """直接写入一条每小时记录"""
    record = HourlyRecord(
        user_id=user_id,
        timestamp=timestamp,
        upload_session_id=upload_session_id,
        source="manual_upload",
        **metrics,
    )
    db.add(record)
    await db.commit()
    return record


async def add_marker(db, user_id, day, is_migraine_day: bool = True):
    """写入偏头痛日标记"""
    marker = MigraineDayMarker(user_id=user_id, date=day, is_migraine_day=is_migraine_day)
    db.add(marker)
    await db.commit()
    return marker
