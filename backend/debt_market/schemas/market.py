"""行情 / 参考数据 Schema"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    symbol: str
    decimals: int
    price_usd: str
    oracle_source: str | None = None
    last_updated_at: str | None = None
    updated_at: datetime


class AssetConfigurationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    symbol: str
    liquidation_threshold: str
    liquidation_bonus: str
    reserve_factor: str
    is_active: bool
    last_updated_at: str | None = None
    updated_at: datetime


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    nonce: str
    total_positions: str
    total_orders_executed: str
    total_volume_usd: str
    last_updated_at: str | None = None
    updated_at: datetime


class SyncLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sync_type: str
    sync_time: datetime
    status: str
    message: str | None = None
    record_count: int


class GraphQLRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    variables: dict | None = None
    operation_name: str | None = Field(default=None, alias="operationName")
