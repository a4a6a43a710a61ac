"""参考数据仓库：用户、债务仓位、代币价格、资产参数"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.models.asset_configuration import AssetConfiguration
from debt_market.models.debt_position import DebtPosition
from debt_market.models.token import Token
from debt_market.models.user import User

logger = logging.getLogger(__name__)


def _updated_at(row: Mapping[str, Any]) -> int:
    value = row.get("last_updated_at")
    return int(value) if isinstance(value, str) and value.isascii() and value.isdigit() else -1


def latest_per_address(rows: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """同一批次内地址重复时只保留 last_updated_at 最大的一条，相同则保留先出现的"""
    latest: dict[str, Mapping[str, Any]] = {}
    for row in rows:
        current = latest.get(row["address"])
        if current is None or _updated_at(row) > _updated_at(current):
            latest[row["address"]] = row
    return list(latest.values())


class MarketRepository:
    """索引服务镜像数据访问层，所有实体都以地址为主键整体覆盖写入"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_many(self, model: type, rows: Sequence[Mapping[str, Any]]) -> tuple[int, int]:
        """
        按 address 批量新增或覆盖

        Returns:
            (新增数量, 更新数量)
        """
        rows = latest_per_address(rows)
        if not rows:
            return 0, 0

        addresses = {row["address"] for row in rows}
        result = await self._session.execute(select(model).where(model.address.in_(addresses)))
        existing = {record.address: record for record in result.scalars().all()}

        created = 0
        updated = 0
        for row in rows:
            record = existing.get(row["address"])
            if record is None:
                record = model(**row)
                self._session.add(record)
                existing[row["address"]] = record
                created += 1
            else:
                for key, value in row.items():
                    setattr(record, key, value)
                updated += 1

        await self._session.commit()
        return created, updated

    async def get_position(self, address: str) -> DebtPosition | None:
        result = await self._session.execute(
            select(DebtPosition).where(DebtPosition.address == address.lower())
        )
        return result.scalar_one_or_none()

    async def get_positions(self, addresses: Iterable[str]) -> dict[str, DebtPosition]:
        addresses = {address.lower() for address in addresses}
        if not addresses:
            return {}
        result = await self._session.execute(select(DebtPosition).where(DebtPosition.address.in_(addresses)))
        return {position.address: position for position in result.scalars().all()}

    async def list_positions(
        self,
        *,
        owner: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[DebtPosition]:
        query = select(DebtPosition)
        if owner:
            query = query.where(DebtPosition.owner == owner.lower())
        result = await self._session.execute(
            query.order_by(DebtPosition.updated_at.desc()).offset(offset).limit(limit)
        )
        return result.scalars().all()

    async def list_users(self, *, limit: int = 50, offset: int = 0) -> Sequence[User]:
        result = await self._session.execute(
            select(User).order_by(User.updated_at.desc()).offset(offset).limit(limit)
        )
        return result.scalars().all()

    async def list_tokens(self, *, symbol: str | None = None) -> Sequence[Token]:
        query = select(Token)
        if symbol:
            query = query.where(func.upper(Token.symbol) == symbol.upper())
        result = await self._session.execute(query.order_by(Token.symbol))
        return result.scalars().all()

    async def list_asset_configurations(
        self,
        *,
        symbol: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[AssetConfiguration]:
        query = select(AssetConfiguration)
        if symbol:
            query = query.where(func.upper(AssetConfiguration.symbol) == symbol.upper())
        if is_active is not None:
            query = query.where(AssetConfiguration.is_active.is_(is_active))
        result = await self._session.execute(query.order_by(AssetConfiguration.symbol))
        return result.scalars().all()

    async def get_prices(self, addresses: Iterable[str]) -> dict[str, str]:
        """代币地址 -> USD 价格"""
        addresses = {address.lower() for address in addresses}
        if not addresses:
            return {}
        result = await self._session.execute(
            select(Token.address, Token.price_usd).where(Token.address.in_(addresses))
        )
        return {address: price for address, price in result.all()}

    async def get_liquidation_thresholds(self, addresses: Iterable[str]) -> dict[str, str]:
        """代币地址 -> 清算阈值（仅启用的资产）"""
        addresses = {address.lower() for address in addresses}
        if not addresses:
            return {}
        result = await self._session.execute(
            select(AssetConfiguration.address, AssetConfiguration.liquidation_threshold).where(
                AssetConfiguration.address.in_(addresses),
                AssetConfiguration.is_active.is_(True),
            )
        )
        return {address: threshold for address, threshold in result.all()}

    async def count(self, model: type) -> int:
        return await self._session.scalar(select(func.count(model.id))) or 0
