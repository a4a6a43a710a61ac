"""索引服务 -> 本地数据库的周期同步

每轮同步并发拉取全部数据集，再按固定顺序逐个应用；单个数据集失败只记录日志和同步日志，
不影响其他数据集。同一时间最多只有一轮同步在运行，定时器触发时若上一轮未结束则直接丢弃本次触发。
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from debt_market.models.asset_configuration import AssetConfiguration
from debt_market.models.debt_position import DebtPosition
from debt_market.models.order import OrderType
from debt_market.models.token import Token
from debt_market.models.user import User
from debt_market.schemas.indexer import (
    IndexerAssetConfiguration,
    IndexerCancelledOrder,
    IndexerDebtPosition,
    IndexerOrderExecution,
    IndexerToken,
    IndexerUser,
)
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.repositories.market_repository import MarketRepository, latest_per_address
from debt_market.services.repositories.order_repository import ONCHAIN_CANCEL_REASON, OrderRepository
from debt_market.services.repositories.sync_log_repository import SyncLogRepository

logger = logging.getLogger(__name__)

# 应用顺序：成交 / 取消事件必须在仓位之前处理，
# 否则成交引起的 nonce 递增会先把订单按 nonce 规则取消
APPLY_ORDER = (
    "users",
    "price_tokens",
    "asset_configurations",
    "full_order_executions",
    "partial_order_executions",
    "cancelled_orders",
    "debt_positions",
)


@dataclass
class DatasetResult:
    name: str
    status: str = "success"
    fetched: int = 0
    created: int = 0
    updated: int = 0
    transitioned: int = 0
    error: str | None = None

    @property
    def message(self) -> str:
        if self.status != "success":
            return f"同步失败: {self.error}"
        if self.name.endswith("orders") or self.name.endswith("executions"):
            return f"{self.fetched} events, {self.transitioned} orders updated"
        return f"{self.created} new, {self.updated} updated"


@dataclass
class SyncReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0
    skipped: bool = False
    datasets: dict[str, DatasetResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.skipped and all(result.status == "success" for result in self.datasets.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "skipped": self.skipped,
            "ok": self.ok,
            "datasets": {name: asdict(result) for name, result in self.datasets.items()},
        }


class SyncEngine:
    """同步引擎，拥有自己的定时任务和运行互斥标志"""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        indexer_client: IndexerClient,
        *,
        interval_seconds: float = 30,
    ) -> None:
        self._session_maker = session_maker
        self._indexer = indexer_client
        self._interval = interval_seconds

        # 是否有一轮同步正在进行
        self._running = False
        # 无同步进行时置位（定时器与手动触发共用）
        self._idle = asyncio.Event()
        self._idle.set()
        self._ticker: asyncio.Task | None = None
        self._pass_task: asyncio.Task | None = None
        self.last_report: SyncReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_scheduled(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    async def start(self) -> None:
        """立即执行一轮，之后每 interval 秒触发一次"""
        if self.is_scheduled:
            logger.warning("同步服务已在运行")
            return
        self._ticker = asyncio.create_task(self._tick_loop())
        logger.info(f"同步服务已启动，间隔 {self._interval} 秒")

    async def stop(self) -> None:
        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        # 等待进行中的一轮结束，包括 run_once 被直接调用的情况
        if self._pass_task and not self._pass_task.done():
            await asyncio.wait([self._pass_task])
        self._pass_task = None
        await self._idle.wait()
        logger.info("同步服务已停止")

    async def _tick_loop(self) -> None:
        while True:
            if self._running:
                logger.info("上一轮同步仍在进行，跳过本次触发")
            else:
                self._pass_task = asyncio.create_task(self._guarded_run())
            await asyncio.sleep(self._interval)

    async def _guarded_run(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            logger.error(f"同步出错: {e}", exc_info=True)

    async def run_once(self) -> SyncReport:
        """
        执行一轮同步

        若已有一轮在进行，直接返回 skipped=True 的报告，不排队。
        """
        # 检查与置位之间不能有 await
        if self._running:
            logger.info("同步已在进行中，跳过")
            return SyncReport(skipped=True)
        self._running = True
        self._idle.clear()

        try:
            report = await self._run_pass()
        finally:
            self._running = False
            self._idle.set()

        self.last_report = report
        return report

    async def _run_pass(self) -> SyncReport:
        report = SyncReport()
        started = time.monotonic()
        logger.info("开始同步索引服务数据...")

        fetchers: dict[str, Callable[[], Awaitable[list]]] = {
            "users": self._indexer.fetch_users,
            "price_tokens": self._indexer.fetch_price_tokens,
            "asset_configurations": self._indexer.fetch_asset_configurations,
            "full_order_executions": self._indexer.fetch_full_order_executions,
            "partial_order_executions": self._indexer.fetch_partial_order_executions,
            "cancelled_orders": self._indexer.fetch_cancelled_orders,
            "debt_positions": self._indexer.fetch_debt_positions,
        }
        appliers: dict[str, Callable[[list, DatasetResult], Awaitable[None]]] = {
            "users": self._apply_users,
            "price_tokens": self._apply_price_tokens,
            "asset_configurations": self._apply_asset_configurations,
            "full_order_executions": self._apply_full_executions,
            "partial_order_executions": self._apply_partial_executions,
            "cancelled_orders": self._apply_cancellations,
            "debt_positions": self._apply_debt_positions,
        }

        # 各数据集独立并发拉取，一个失败不影响其他
        fetched = await asyncio.gather(
            *(fetchers[name]() for name in APPLY_ORDER),
            return_exceptions=True,
        )

        for name, data in zip(APPLY_ORDER, fetched):
            result = DatasetResult(name=name)
            report.datasets[name] = result

            if isinstance(data, BaseException):
                result.status = "failed"
                result.error = str(data)
                logger.error(f"拉取 {name} 失败: {data}")
            else:
                result.fetched = len(data)
                try:
                    await appliers[name](data, result)
                    logger.info(f"{name} 同步完成: {result.message}")
                except Exception as e:
                    result.status = "failed"
                    result.error = str(e)
                    logger.error(f"应用 {name} 失败: {e}", exc_info=True)

            await self._write_sync_log(result)

        report.duration_seconds = time.monotonic() - started
        logger.info(f"本轮同步完成，耗时 {report.duration_seconds:.2f} 秒")
        return report

    async def _write_sync_log(self, result: DatasetResult) -> None:
        try:
            async with self._session_maker() as session:
                await SyncLogRepository(session).add(
                    sync_type=result.name,
                    status=result.status,
                    record_count=result.fetched,
                    message=result.message,
                )
        except Exception as e:
            logger.error(f"写入同步日志失败 ({result.name}): {e}", exc_info=True)

    async def _apply_users(self, users: list[IndexerUser], result: DatasetResult) -> None:
        rows = [
            {
                "address": user.id.lower(),
                "nonce": user.nonce,
                "total_positions": user.total_positions,
                "total_orders_executed": user.total_orders_executed,
                "total_volume_usd": user.total_volume_usd,
                "last_updated_at": user.last_updated_at,
            }
            for user in users
        ]
        async with self._session_maker() as session:
            result.created, result.updated = await MarketRepository(session).upsert_many(User, rows)

    async def _apply_price_tokens(self, tokens: list[IndexerToken], result: DatasetResult) -> None:
        rows = [
            {
                "address": token.id.lower(),
                "symbol": token.symbol,
                "decimals": token.decimals,
                "price_usd": token.price_usd,
                "oracle_source": token.oracle_source,
                "last_updated_at": token.last_updated_at,
            }
            for token in tokens
        ]
        async with self._session_maker() as session:
            result.created, result.updated = await MarketRepository(session).upsert_many(Token, rows)

    async def _apply_asset_configurations(
        self,
        configs: list[IndexerAssetConfiguration],
        result: DatasetResult,
    ) -> None:
        rows = [
            {
                "address": config.id.lower(),
                "symbol": config.symbol,
                "liquidation_threshold": config.liquidation_threshold,
                "liquidation_bonus": config.liquidation_bonus,
                "reserve_factor": config.reserve_factor,
                "is_active": config.is_active,
                "last_updated_at": config.last_updated_at,
            }
            for config in configs
        ]
        async with self._session_maker() as session:
            result.created, result.updated = await MarketRepository(session).upsert_many(AssetConfiguration, rows)

    async def _apply_executions(
        self,
        executions: list[IndexerOrderExecution],
        order_type: OrderType,
        result: DatasetResult,
    ) -> None:
        async with self._session_maker() as session:
            repo = OrderRepository(session)
            for execution in executions:
                changed = await repo.transition_to_executed(
                    title_hash=execution.title_hash,
                    order_type=order_type.value,
                    buyer=execution.buyer,
                    tx_hash=execution.transaction_hash or execution.id,
                    block_number=execution.block_number,
                    usd_value=execution.usd_value,
                    usd_bonus=execution.usd_bonus,
                    executed_at=datetime.fromtimestamp(execution.block_timestamp, timezone.utc),
                )
                if changed:
                    logger.info(f"{order_type.value} 订单 {execution.title_hash} 已成交，买家 {execution.buyer}")
                result.transitioned += changed

    async def _apply_full_executions(self, executions: list[IndexerOrderExecution], result: DatasetResult) -> None:
        await self._apply_executions(executions, OrderType.FULL, result)

    async def _apply_partial_executions(
        self,
        executions: list[IndexerOrderExecution],
        result: DatasetResult,
    ) -> None:
        await self._apply_executions(executions, OrderType.PARTIAL, result)

    async def _apply_cancellations(self, cancellations: list[IndexerCancelledOrder], result: DatasetResult) -> None:
        async with self._session_maker() as session:
            repo = OrderRepository(session)
            for cancellation in cancellations:
                changed = await repo.transition_to_cancelled(
                    title_hash=cancellation.title_hash,
                    order_id=cancellation.id,
                    reason=ONCHAIN_CANCEL_REASON,
                    cancelled_at=datetime.fromtimestamp(cancellation.cancelled_at, timezone.utc),
                )
                if changed:
                    logger.info(f"订单 {cancellation.title_hash} 已在链上取消")
                result.transitioned += changed

    async def _apply_debt_positions(self, positions: list[IndexerDebtPosition], result: DatasetResult) -> None:
        rows = [
            {
                "address": position.id.lower(),
                "owner": position.owner.lower(),
                "nonce": position.nonce,
                "collaterals": json.dumps(
                    [
                        {
                            "token": collateral.token.id.lower(),
                            "symbol": collateral.token.symbol,
                            "decimals": collateral.token.decimals,
                            "amount": collateral.amount,
                        }
                        for collateral in position.collaterals
                    ]
                ),
                "debts": json.dumps(
                    [
                        {
                            "token": debt.token.id.lower(),
                            "symbol": debt.token.symbol,
                            "decimals": debt.token.decimals,
                            "amount": debt.amount,
                            "interest_rate_mode": debt.interest_rate_mode,
                        }
                        for debt in position.debts
                    ]
                ),
                "last_updated_at": position.last_updated_at,
            }
            for position in positions
        ]
        rows = latest_per_address(rows)

        async with self._session_maker() as session:
            result.created, result.updated = await MarketRepository(session).upsert_many(DebtPosition, rows)

            # 仓位 nonce 前进后，按旧 nonce 签名的订单全部失效
            orders = OrderRepository(session)
            for row in rows:
                result.transitioned += await orders.cancel_stale_orders(row["address"], row["nonce"])
