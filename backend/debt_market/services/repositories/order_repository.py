"""订单仓库：订单生命周期的唯一写入入口"""

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.core.exceptions import DuplicateActiveOrderError, DuplicateOrderError
from debt_market.models.order import TERMINAL_STATUSES, Order, OrderStatus

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "start_time", "end_time", "updated_at")

# 链上取消事件写入的取消原因
ONCHAIN_CANCEL_REASON = "Cancelled on-chain"


def nonce_cancel_reason(current_nonce: int) -> str:
    return f"Debt nonce incremented to {current_nonce}"


class OrderRepository:
    """订单数据访问层"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_order_id(self, order_id: str) -> Order | None:
        result = await self._session.execute(select(Order).where(Order.order_id == order_id.lower()))
        return result.scalar_one_or_none()

    async def get_active_for_debt(self, debt_address: str, order_type: str) -> Order | None:
        """(债务仓位, 订单类型) 当前存储为 ACTIVE 的订单"""
        result = await self._session.execute(
            select(Order).where(
                Order.debt_address == debt_address.lower(),
                Order.order_type == order_type,
                Order.status == OrderStatus.ACTIVE.value,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, order: Order, now: int | None = None) -> Order:
        """
        保存新订单（状态 ACTIVE）

        同一 (债务仓位, 订单类型) 已有未过期的 ACTIVE 订单时抛 DuplicateActiveOrderError，且不修改任何数据；
        已过期但仍为 ACTIVE 的旧订单会先被标记为 EXPIRED（被新订单取代）。
        """
        now = int(time.time()) if now is None else now

        duplicate = await self.get_by_order_id(order.order_id)
        if duplicate is not None:
            raise DuplicateOrderError(duplicate.order_id, duplicate.status)

        existing = await self.get_active_for_debt(order.debt_address, order.order_type)
        if existing is not None and existing.end_time >= now:
            raise DuplicateActiveOrderError(existing.order_id, existing.end_time, order.order_type)

        if existing is not None:
            # 被取代的过期订单
            await self._session.execute(
                update(Order)
                .where(Order.id == existing.id, Order.status == OrderStatus.ACTIVE.value)
                .values(status=OrderStatus.EXPIRED.value)
                .execution_options(synchronize_session="fetch")
            )
            logger.info(f"订单 {existing.order_id} 已过期，被新订单取代，标记为 EXPIRED")

        order.status = OrderStatus.ACTIVE.value
        self._session.add(order)
        try:
            await self._session.commit()
        except IntegrityError:
            # 并发提交：部分唯一索引保证两个 ACTIVE 订单不会同时落库
            await self._session.rollback()
            raise await self._conflict_for(order) from None

        await self._session.refresh(order)
        logger.info(f"订单已创建: {order.order_id} ({order.order_type}, debt={order.debt_address})")
        return order

    async def _conflict_for(self, order: Order) -> Exception:
        duplicate = await self.get_by_order_id(order.order_id)
        if duplicate is not None:
            return DuplicateOrderError(duplicate.order_id, duplicate.status)
        existing = await self.get_active_for_debt(order.debt_address, order.order_type)
        if existing is not None:
            return DuplicateActiveOrderError(existing.order_id, existing.end_time, order.order_type)
        return DuplicateActiveOrderError("", None, order.order_type)

    async def list_orders(
        self,
        *,
        seller: str | None = None,
        debt_address: str | None = None,
        status: str | None = None,
        order_type: str | None = None,
        chain_id: int | None = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[Sequence[Order], int]:
        """分页查询订单，返回 (当前页订单, 总数)"""
        conditions = []
        if seller:
            conditions.append(Order.seller == seller.lower())
        if debt_address:
            conditions.append(Order.debt_address == debt_address.lower())
        if status:
            conditions.append(Order.status == status)
        if order_type:
            conditions.append(Order.order_type == order_type)
        if chain_id is not None:
            conditions.append(Order.chain_id == chain_id)

        if sort_by not in SORTABLE_FIELDS:
            sort_by = "created_at"
        sort_column = getattr(Order, sort_by)
        ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()

        total = await self._session.scalar(select(func.count(Order.id)).where(*conditions))

        result = await self._session.execute(
            select(Order)
            .where(*conditions)
            .order_by(ordering, Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return result.scalars().all(), total or 0

    async def list_active(
        self,
        *,
        seller: str | None = None,
        debt_address: str | None = None,
        order_type: str | None = None,
        chain_id: int | None = None,
        limit: int = 50,
        now: int | None = None,
    ) -> Sequence[Order]:
        """存储状态为 ACTIVE 且当前处于 [start_time, end_time] 内的订单，最新的在前"""
        now = int(time.time()) if now is None else now
        query = select(Order).where(
            Order.status == OrderStatus.ACTIVE.value,
            Order.start_time <= now,
            Order.end_time >= now,
        )
        if seller:
            query = query.where(Order.seller == seller.lower())
        if debt_address:
            query = query.where(Order.debt_address == debt_address.lower())
        if order_type:
            query = query.where(Order.order_type == order_type)
        if chain_id is not None:
            query = query.where(Order.chain_id == chain_id)

        result = await self._session.execute(query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit))
        return result.scalars().all()

    async def transition_to_executed(
        self,
        *,
        title_hash: str,
        order_type: str,
        buyer: str,
        tx_hash: str | None,
        block_number: str | None,
        usd_value: str | None,
        usd_bonus: str | None,
        executed_at: datetime,
    ) -> int:
        """标记成交；已是终态的订单不受影响，返回实际变更的行数"""
        return await self._bulk_transition(
            [Order.title_hash == title_hash.lower(), Order.order_type == order_type],
            status=OrderStatus.EXECUTED.value,
            buyer=buyer.lower(),
            execution_tx_hash=tx_hash,
            execution_block_number=block_number,
            usd_value=usd_value,
            usd_bonus=usd_bonus,
            executed_at=executed_at,
        )

    async def transition_to_cancelled(
        self,
        *,
        reason: str,
        cancelled_at: datetime,
        title_hash: str | None = None,
        order_id: str | None = None,
    ) -> int:
        """按 title_hash 或 order_id 标记取消；已是终态的订单不受影响"""
        keys = []
        if title_hash:
            keys.append(Order.title_hash == title_hash.lower())
        if order_id:
            keys.append(Order.order_id == order_id.lower())
        if not keys:
            return 0
        return await self._bulk_transition(
            [or_(*keys)],
            status=OrderStatus.CANCELLED.value,
            cancel_reason=reason,
            cancelled_at=cancelled_at,
        )

    async def cancel_stale_orders(
        self,
        debt_address: str,
        current_nonce: int,
        cancelled_at: datetime | None = None,
    ) -> int:
        """
        取消所有签名 nonce 严格小于仓位当前 nonce 的 ACTIVE 订单

        nonce 等于当前值的订单尚未被消耗，保持 ACTIVE。
        """
        cancelled = await self._bulk_transition(
            [
                Order.debt_address == debt_address.lower(),
                Order.debt_nonce < current_nonce,
                Order.status == OrderStatus.ACTIVE.value,
            ],
            status=OrderStatus.CANCELLED.value,
            cancel_reason=nonce_cancel_reason(current_nonce),
            cancelled_at=cancelled_at or datetime.now(timezone.utc),
        )
        if cancelled:
            logger.info(f"债务仓位 {debt_address} nonce 变为 {current_nonce}，取消 {cancelled} 个旧订单")
        return cancelled

    async def _bulk_transition(self, conditions: list, **values) -> int:
        """对非终态订单执行一次带条件的批量状态变更"""
        result = await self._session.execute(
            update(Order)
            .where(*conditions, Order.status.not_in(TERMINAL_STATUSES))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await self._session.commit()
        return result.rowcount or 0

    async def count_by_status(self) -> dict[str, int]:
        result = await self._session.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
        return {status: count for status, count in result.all()}
