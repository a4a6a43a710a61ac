"""订单业务逻辑：准入校验、签名校验、查询时的可执行性标注"""

import json
import logging
import math
import time
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.core.exceptions import (
    InvalidOrderRequestError,
    InvalidSignatureError,
    OrderNotFoundError,
    OrderValidationError,
)
from debt_market.models.order import Order, OrderStatus, OrderType
from debt_market.schemas.order import (
    ActiveOrderListResponse,
    CreateOrderRequest,
    FullSellOrderPayload,
    OrderListResponse,
    OrderResponse,
    Pagination,
    PartialSellOrderPayload,
)
from debt_market.services.debt_position_service import DebtPositionService
from debt_market.services.executability import Verdict, can_execute_label, evaluate
from debt_market.services.health_factor import INFINITE_HEALTH_FACTOR
from debt_market.services.order_validator import is_valid_address, validate_order
from debt_market.services.repositories.order_repository import OrderRepository
from debt_market.services.signature_codec import SignatureCodec

logger = logging.getLogger(__name__)

ACTIVE_ORDERS_LIMIT = 50


class OrderService:
    def __init__(self, session: AsyncSession, codec: SignatureCodec) -> None:
        self._orders = OrderRepository(session)
        self._positions = DebtPositionService(session)
        self._codec = codec

    async def create_order(self, request: CreateOrderRequest, now: int | None = None) -> OrderResponse:
        """
        订单准入：请求检查 -> 字段校验 -> 签名校验 -> 唯一性检查后落库

        Raises:
            InvalidOrderRequestError: 负载与订单类型不匹配，或合约 / 卖家地址无效
            OrderValidationError: 字段校验失败（携带全部违规项）
            InvalidSignatureError: 签名恢复出的地址不是卖家
            ConflictError: 已有同一仓位同类型的有效订单，或同一订单重复提交
        """
        now = int(time.time()) if now is None else now
        order_type = OrderType(request.order_type)
        payload = self._select_payload(request, order_type)

        if not is_valid_address(request.contract_address):
            raise InvalidOrderRequestError("Invalid contract address")
        if not is_valid_address(request.seller):
            raise InvalidOrderRequestError("Invalid seller address")

        errors = validate_order(order_type, payload, now)
        if errors:
            raise OrderValidationError(errors, order_type.value)

        check = self._codec.verify(order_type, request.chain_id, request.contract_address, payload, request.seller)
        if not check.valid:
            logger.warning(f"签名校验失败: 卖家 {request.seller}，恢复地址 {check.recovered}")
            raise InvalidSignatureError(check.recovered)

        order = self._build_order(request, order_type, payload)
        order = await self._orders.create(order, now=now)
        return (await self.annotate([order], now))[0]

    @staticmethod
    def _select_payload(
        request: CreateOrderRequest,
        order_type: OrderType,
    ) -> FullSellOrderPayload | PartialSellOrderPayload:
        if order_type is OrderType.FULL:
            if request.full_sell_order is None:
                raise InvalidOrderRequestError("Full sell order data required for FULL order type")
            if request.partial_sell_order is not None:
                raise InvalidOrderRequestError("Partial sell order data must be null for FULL order type")
            return request.full_sell_order

        if request.partial_sell_order is None:
            raise InvalidOrderRequestError("Partial sell order data required for PARTIAL order type")
        if request.full_sell_order is not None:
            raise InvalidOrderRequestError("Full sell order data must be null for PARTIAL order type")
        return request.partial_sell_order

    def _build_order(
        self,
        request: CreateOrderRequest,
        order_type: OrderType,
        payload: FullSellOrderPayload | PartialSellOrderPayload,
    ) -> Order:
        struct_hash = self._codec.struct_hash(order_type, request.chain_id, request.contract_address, payload)
        title_hash = self._codec.title_hash(payload)
        raw_payload = json.dumps(payload.model_dump(by_alias=True))

        return Order(
            order_id="0x" + struct_hash.hex(),
            title_hash="0x" + title_hash.hex(),
            order_type=order_type.value,
            chain_id=request.chain_id,
            contract_address=request.contract_address.lower(),
            seller=request.seller.lower(),
            full_sell_order=raw_payload if order_type is OrderType.FULL else None,
            partial_sell_order=raw_payload if order_type is OrderType.PARTIAL else None,
            status=OrderStatus.ACTIVE.value,
            debt_address=payload.debt.lower(),
            debt_nonce=payload.debt_nonce,
            start_time=payload.start_time,
            end_time=payload.end_time,
            trigger_hf=payload.trigger_hf,
        )

    async def annotate(self, orders: Sequence[Order], now: int | None = None) -> list[OrderResponse]:
        """为订单附加当前健康因子、可执行性判定及债务仓位"""
        now = int(time.time()) if now is None else now
        positions = await self._positions.get_positions_with_health({order.debt_address for order in orders})

        responses = []
        for order in orders:
            position = positions.get(order.debt_address)
            current_hf = position.health_factor if position else INFINITE_HEALTH_FACTOR
            verdict = evaluate(order.start_time, order.end_time, order.status, order.trigger_hf, current_hf, now)
            responses.append(
                OrderResponse.model_validate(order).model_copy(
                    update={
                        "current_hf": current_hf,
                        "verdict": verdict.value,
                        "can_execute": can_execute_label(verdict),
                        "debt_position": position,
                    }
                )
            )
        return responses

    async def get_order(self, order_id: str, now: int | None = None) -> OrderResponse:
        order = await self._orders.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return (await self.annotate([order], now))[0]

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
        now: int | None = None,
    ) -> OrderListResponse:
        orders, total = await self._orders.list_orders(
            seller=seller,
            debt_address=debt_address,
            status=status,
            order_type=order_type,
            chain_id=chain_id,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        total_pages = math.ceil(total / limit) if total else 0
        return OrderListResponse(
            orders=await self.annotate(orders, now),
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_items=total,
                items_per_page=limit,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    async def list_active_orders(
        self,
        *,
        seller: str | None = None,
        debt_address: str | None = None,
        order_type: str | None = None,
        chain_id: int | None = None,
        executable_only: bool = False,
        now: int | None = None,
    ) -> ActiveOrderListResponse:
        now = int(time.time()) if now is None else now
        orders = await self._orders.list_active(
            seller=seller,
            debt_address=debt_address,
            order_type=order_type,
            chain_id=chain_id,
            limit=ACTIVE_ORDERS_LIMIT,
            now=now,
        )
        annotated = await self.annotate(orders, now)
        if executable_only:
            annotated = [order for order in annotated if order.verdict == Verdict.EXECUTABLE.value]
        return ActiveOrderListResponse(orders=annotated, count=len(annotated))
