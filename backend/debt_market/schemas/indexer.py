"""索引服务（Subgraph）实体 Schema"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _unwrap_id(value: Any) -> Any:
    """嵌套引用 {id: "0x.."} 展平为地址字符串"""
    if isinstance(value, dict):
        return value.get("id")
    return value


class _IndexerEntity(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class IndexerUser(_IndexerEntity):
    id: str
    nonce: str = "0"
    total_positions: str = "0"
    total_orders_executed: str = "0"
    total_volume_usd: str = Field(default="0", alias="totalVolumeUSD")
    last_updated_at: str | None = None


class IndexerTokenRef(_IndexerEntity):
    id: str
    symbol: str = ""
    decimals: int = 18


class IndexerCollateral(_IndexerEntity):
    token: IndexerTokenRef
    amount: str


class IndexerDebt(_IndexerEntity):
    token: IndexerTokenRef
    amount: str
    interest_rate_mode: str = "2"


class IndexerDebtPosition(_IndexerEntity):
    id: str
    owner: str
    nonce: int
    collaterals: list[IndexerCollateral] = Field(default_factory=list)
    debts: list[IndexerDebt] = Field(default_factory=list)
    last_updated_at: str | None = None

    @field_validator("owner", mode="before")
    @classmethod
    def _owner_id(cls, value: Any) -> Any:
        return _unwrap_id(value)


class IndexerOrderExecution(_IndexerEntity):
    """整仓 / 部分卖单的链上成交事件"""

    id: str
    title_hash: str
    buyer: str
    usd_value: str | None = Field(default=None, alias="usdValue")
    usd_bonus: str | None = Field(default=None, alias="usdBonus")
    block_timestamp: int
    block_number: str | None = None
    transaction_hash: str | None = None

    @field_validator("buyer", mode="before")
    @classmethod
    def _buyer_id(cls, value: Any) -> Any:
        return _unwrap_id(value)


class IndexerCancelledOrder(_IndexerEntity):
    id: str
    title_hash: str
    cancelled_at: int


class IndexerToken(_IndexerEntity):
    id: str
    symbol: str
    decimals: int = 18
    price_usd: str = Field(alias="priceUSD")
    oracle_source: str | None = None
    last_updated_at: str | None = None


class IndexerAssetConfiguration(_IndexerEntity):
    id: str
    symbol: str
    liquidation_threshold: str
    liquidation_bonus: str = "0"
    reserve_factor: str = "0"
    is_active: bool = True
    last_updated_at: str | None = None
