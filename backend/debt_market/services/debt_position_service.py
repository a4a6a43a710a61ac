"""债务仓位查询与实时健康因子"""

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.models.debt_position import DebtPosition
from debt_market.schemas.order import DebtPositionResponse
from debt_market.services.health_factor import INFINITE_HEALTH_FACTOR, calculate_health_factor
from debt_market.services.repositories.market_repository import MarketRepository

logger = logging.getLogger(__name__)


def _tokens_of(positions: Iterable[DebtPosition]) -> set[str]:
    tokens = set()
    for position in positions:
        tokens.update(entry["token"] for entry in position.collateral_list)
        tokens.update(entry["token"] for entry in position.debt_list)
    return tokens


class DebtPositionService:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = MarketRepository(session)

    async def get_current_health_factor(self, debt_address: str) -> str:
        """仓位当前健康因子；仓位未知或出错时返回无穷大哨兵值"""
        try:
            position = await self._repo.get_position(debt_address)
            if position is None:
                logger.debug(f"仓位 {debt_address} 尚未同步，健康因子按无穷大处理")
                return INFINITE_HEALTH_FACTOR
            health_factors = await self._health_factors([position])
            return health_factors[position.address]
        except Exception as e:
            logger.warning(f"获取仓位 {debt_address} 健康因子失败: {e}")
            return INFINITE_HEALTH_FACTOR

    async def _health_factors(self, positions: Sequence[DebtPosition]) -> dict[str, str]:
        tokens = _tokens_of(positions)
        prices = await self._repo.get_prices(tokens)
        thresholds = await self._repo.get_liquidation_thresholds(tokens)
        return {
            position.address: calculate_health_factor(
                position.collateral_list, position.debt_list, prices, thresholds
            )
            for position in positions
        }

    async def get_positions_with_health(self, addresses: Iterable[str]) -> dict[str, DebtPositionResponse]:
        """批量获取仓位及健康因子，键为小写地址；未同步的仓位不在结果中"""
        positions = await self._repo.get_positions(addresses)
        if not positions:
            return {}
        health_factors = await self._health_factors(list(positions.values()))
        return {
            address: self._to_response(position, health_factors[address])
            for address, position in positions.items()
        }

    async def list_positions(
        self,
        *,
        owner: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DebtPositionResponse]:
        positions = await self._repo.list_positions(owner=owner, limit=limit, offset=offset)
        if not positions:
            return []
        health_factors = await self._health_factors(positions)
        return [self._to_response(position, health_factors[position.address]) for position in positions]

    @staticmethod
    def _to_response(position: DebtPosition, health_factor: str) -> DebtPositionResponse:
        return DebtPositionResponse(
            address=position.address,
            owner=position.owner,
            nonce=position.nonce,
            collaterals=position.collateral_list,
            debts=position.debt_list,
            health_factor=health_factor,
            last_updated_at=position.last_updated_at,
            updated_at=position.updated_at,
        )
