"""订单 Schema"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """请求体同时接受 snake_case 与 camelCase 字段名"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class OrderTitlePayload(_CamelModel):
    """OrderTitle 字段 + 签名分量"""

    debt: str = Field(..., description="债务仓位地址")
    debt_nonce: int = Field(..., ge=0, description="签名时的仓位 nonce")
    start_time: int = Field(..., description="开始时间（unix 秒）")
    end_time: int = Field(..., description="结束时间（unix 秒）")
    trigger_hf: str = Field(..., alias="triggerHF", description="触发健康因子（1e18 定点）")
    v: int = Field(..., description="签名 v（27 或 28）")
    r: str = Field(..., description="签名 r（32 字节十六进制）")
    s: str = Field(..., description="签名 s（32 字节十六进制）")


class FullSellOrderPayload(OrderTitlePayload):
    """整仓卖单"""

    token: str = Field(..., description="收款代币地址")
    percent_of_equity: str = Field(..., description="出售净值比例（基点，1-10000）")


class PartialSellOrderPayload(OrderTitlePayload):
    """部分卖单"""

    interest_rate_mode: int = Field(..., description="利率模式：1 固定，2 浮动")
    collateral_out: list[str] = Field(default_factory=list, description="取出的抵押代币")
    percents: list[str] = Field(default_factory=list, description="各抵押代币占比（基点，合计 10000）")
    repay_token: str = Field(..., description="偿还代币地址")
    repay_amount: str = Field(..., description="偿还数量（最小单位整数）")
    bonus: str = Field(..., description="买家奖励（基点）")


class CreateOrderRequest(_CamelModel):
    """创建订单请求"""

    order_type: Literal["FULL", "PARTIAL"]
    chain_id: int = Field(..., gt=0)
    contract_address: str
    seller: str
    full_sell_order: FullSellOrderPayload | None = None
    partial_sell_order: PartialSellOrderPayload | None = None


class DebtPositionResponse(BaseModel):
    """带实时健康因子的债务仓位"""

    address: str
    owner: str
    nonce: int
    collaterals: list[dict[str, Any]] = Field(default_factory=list)
    debts: list[dict[str, Any]] = Field(default_factory=list)
    health_factor: str
    last_updated_at: str | None = None
    updated_at: datetime | None = None


class OrderResponse(BaseModel):
    """订单响应模型"""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., validation_alias="order_id")
    title_hash: str
    order_type: str
    chain_id: int
    contract_address: str
    seller: str
    status: str
    debt_address: str
    debt_nonce: int
    start_time: int
    end_time: int
    trigger_hf: str
    full_sell_order: dict[str, Any] | None = None
    partial_sell_order: dict[str, Any] | None = None
    buyer: str | None = None
    execution_tx_hash: str | None = None
    execution_block_number: str | None = None
    executed_at: datetime | None = None
    usd_value: str | None = None
    usd_bonus: str | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    # 读取时计算的字段
    current_hf: str | None = None
    verdict: str | None = None
    can_execute: str | None = None
    debt_position: DebtPositionResponse | None = None

    @field_validator("full_sell_order", "partial_sell_order", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_prev: bool


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: Pagination


class ActiveOrderListResponse(BaseModel):
    orders: list[OrderResponse]
    count: int
