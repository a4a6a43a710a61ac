from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.models.sync_log import SyncLog


class SyncLogRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, *, sync_type: str, status: str, record_count: int, message: str | None = None) -> None:
        self._session.add(
            SyncLog(
                sync_type=sync_type,
                status=status,
                record_count=record_count,
                message=message[:500] if message else None,
            )
        )
        await self._session.commit()

    async def latest_per_type(self) -> Sequence[SyncLog]:
        """每个数据集最近一次同步记录"""
        latest = (
            select(SyncLog.sync_type, func.max(SyncLog.id).label("max_id"))
            .group_by(SyncLog.sync_type)
            .subquery()
        )
        result = await self._session.execute(
            select(SyncLog).join(latest, SyncLog.id == latest.c.max_id).order_by(SyncLog.sync_type)
        )
        return result.scalars().all()
