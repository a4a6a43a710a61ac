from typing import Literal

from fastapi import APIRouter, Depends, Query

from debt_market.core.deps import get_order_service
from debt_market.models.order import OrderStatus, OrderType
from debt_market.schemas.common import ApiResponse, ok
from debt_market.schemas.order import CreateOrderRequest
from debt_market.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=ApiResponse, status_code=201)
async def create_order(
    request: CreateOrderRequest,
    service: OrderService = Depends(get_order_service),
) -> ApiResponse:
    """提交已签名的卖单"""
    order = await service.create_order(request)
    return ok(order)


@router.get("", response_model=ApiResponse)
async def list_orders(
    seller: str | None = None,
    debt_address: str | None = None,
    status: OrderStatus | None = None,
    order_type: OrderType | None = None,
    chain_id: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["created_at", "start_time", "end_time", "updated_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    service: OrderService = Depends(get_order_service),
) -> ApiResponse:
    """分页查询订单（不按时间过滤，已过期但未被取代的订单仍显示为 ACTIVE）"""
    result = await service.list_orders(
        seller=seller,
        debt_address=debt_address,
        status=status.value if status else None,
        order_type=order_type.value if order_type else None,
        chain_id=chain_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok(result)


@router.get("/active", response_model=ApiResponse)
async def list_active_orders(
    seller: str | None = None,
    debt_address: str | None = None,
    order_type: OrderType | None = None,
    chain_id: int | None = None,
    executable_only: bool = False,
    service: OrderService = Depends(get_order_service),
) -> ApiResponse:
    """当前处于有效时间窗口内的订单"""
    result = await service.list_active_orders(
        seller=seller,
        debt_address=debt_address,
        order_type=order_type.value if order_type else None,
        chain_id=chain_id,
        executable_only=executable_only,
    )
    return ok(result)


@router.get("/{order_id}", response_model=ApiResponse)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> ApiResponse:
    order = await service.get_order(order_id)
    return ok(order)
