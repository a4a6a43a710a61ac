"""索引服务（Subgraph）GraphQL 客户端

多个地址按顺序排列（主地址在前）。每次查询从上一次成功的地址开始轮询，
每个地址最多尝试一次，失败立即切换到下一个，不做退避。
"""

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from debt_market.core.config import Settings
from debt_market.core.exceptions import AllEndpointsFailedError, IndexerResponseError
from debt_market.schemas.indexer import (
    IndexerAssetConfiguration,
    IndexerCancelledOrder,
    IndexerDebtPosition,
    IndexerOrderExecution,
    IndexerToken,
    IndexerUser,
)

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)

USERS_QUERY = """
query GetUsers($first: Int!, $skip: Int!) {
  users(first: $first, skip: $skip, orderBy: lastUpdatedAt, orderDirection: desc) {
    id
    nonce
    totalPositions
    totalOrdersExecuted
    totalVolumeUSD
    lastUpdatedAt
  }
}
"""

DEBT_POSITIONS_QUERY = """
query GetDebtPositions($first: Int!, $skip: Int!) {
  debtPositions(first: $first, skip: $skip, orderBy: lastUpdatedAt, orderDirection: desc) {
    id
    owner {
      id
    }
    nonce
    collaterals {
      token {
        id
        symbol
        decimals
      }
      amount
    }
    debts {
      token {
        id
        symbol
        decimals
      }
      amount
      interestRateMode
    }
    lastUpdatedAt
  }
}
"""

FULL_ORDER_EXECUTIONS_QUERY = """
query GetFullOrderExecutions($first: Int!, $skip: Int!) {
  fullSellOrderExecutions(first: $first, skip: $skip, orderBy: blockTimestamp, orderDirection: desc) {
    id
    titleHash
    buyer {
      id
    }
    usdValue
    usdBonus
    blockTimestamp
    blockNumber
    transactionHash
  }
}
"""

PARTIAL_ORDER_EXECUTIONS_QUERY = """
query GetPartialOrderExecutions($first: Int!, $skip: Int!) {
  partialSellOrderExecutions(first: $first, skip: $skip, orderBy: blockTimestamp, orderDirection: desc) {
    id
    titleHash
    buyer {
      id
    }
    usdValue
    usdBonus
    blockTimestamp
    blockNumber
    transactionHash
  }
}
"""

CANCELLED_ORDERS_QUERY = """
query GetCancelledOrders($first: Int!, $skip: Int!) {
  cancelledOrders(first: $first, skip: $skip, orderBy: cancelledAt, orderDirection: desc) {
    id
    titleHash
    cancelledAt
  }
}
"""

PRICE_TOKENS_QUERY = """
query GetPriceTokens($first: Int!, $skip: Int!) {
  tokens(first: $first, skip: $skip, orderBy: lastUpdatedAt, orderDirection: desc) {
    id
    symbol
    decimals
    priceUSD
    oracleSource
    lastUpdatedAt
  }
}
"""

ASSET_CONFIGURATIONS_QUERY = """
query QueryLiquidationThreshold($first: Int!, $skip: Int!) {
  assetConfigurations(first: $first, skip: $skip, orderBy: lastUpdatedAt, orderDirection: desc) {
    id
    symbol
    liquidationThreshold
    liquidationBonus
    reserveFactor
    isActive
    lastUpdatedAt
  }
}
"""


class IndexerClient:
    """带故障转移的索引服务客户端"""

    def __init__(
        self,
        endpoints: list[str],
        api_key: str,
        *,
        timeout: float = 10.0,
        page_size: int = 100,
        max_pages: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("至少需要一个索引服务地址")
        self._endpoints = list(endpoints)
        self._last_success_index = 0
        self._page_size = page_size
        self._max_pages = max_pages
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "IndexerClient":
        return cls(
            settings.indexer_endpoints,
            settings.indexer_api_key,
            timeout=settings.indexer_timeout_seconds,
            page_size=settings.indexer_page_size,
            max_pages=settings.indexer_max_pages,
            transport=transport,
        )

    @property
    def last_success_index(self) -> int:
        return self._last_success_index

    async def close(self) -> None:
        await self._client.aclose()

    async def execute_query(
        self,
        query: str,
        variables: dict | None = None,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        """
        执行 GraphQL 查询

        从上一次成功的地址开始，依次尝试每个地址一次。

        Returns:
            GraphQL 响应体（包含 data，可能同时包含 errors）

        Raises:
            AllEndpointsFailedError: 所有地址都失败
        """
        body = {
            "query": query,
            "variables": variables or {},
            "operationName": operation_name,
        }
        count = len(self._endpoints)
        start = self._last_success_index
        last_error: Exception | None = None

        for attempt in range(count):
            index = (start + attempt) % count
            endpoint = self._endpoints[index]
            try:
                result = await self._post(endpoint, body)
            except (httpx.HTTPError, IndexerResponseError) as e:
                last_error = e
                logger.warning(f"索引服务地址 [{index}] {endpoint} 请求失败: {e}，切换到下一个地址")
                continue

            if index != start:
                logger.info(f"索引服务切换到地址 [{index}] {endpoint}")
            self._last_success_index = index
            return result

        logger.error(f"所有 {count} 个索引服务地址均请求失败，最后错误: {last_error}")
        raise AllEndpointsFailedError(count, last_error)

    async def _post(self, endpoint: str, body: dict) -> dict[str, Any]:
        response = await self._client.post(endpoint, json=body)
        if response.status_code != 200:
            raise IndexerResponseError(f"状态码 {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise IndexerResponseError(f"JSON 解析失败: {e}") from e

        if not isinstance(result, dict):
            raise IndexerResponseError("响应不是 JSON 对象")

        errors = result.get("errors")
        if errors and not result.get("data"):
            raise IndexerResponseError(f"GraphQL 错误: {errors}")
        if errors:
            logger.warning(f"GraphQL 返回部分错误: {errors}")
        return result

    async def _fetch_paginated(
        self,
        field: str,
        query: str,
        operation_name: str,
        model: type[EntityT],
    ) -> list[EntityT]:
        """按 first/skip 分页拉取，最多 max_pages 页，遇到不满一页即停止"""
        entities: list[EntityT] = []
        for page in range(self._max_pages):
            result = await self.execute_query(
                query,
                {"first": self._page_size, "skip": page * self._page_size},
                operation_name,
            )
            rows = (result.get("data") or {}).get(field) or []

            for row in rows:
                try:
                    entities.append(model.model_validate(row))
                except ValidationError as e:
                    logger.warning(f"{field} 实体解析失败，已跳过: {row.get('id') if isinstance(row, dict) else row}, 错误: {e}")

            if len(rows) < self._page_size:
                break

        logger.debug(f"{field}: 获取 {len(entities)} 条")
        return entities

    async def fetch_users(self) -> list[IndexerUser]:
        return await self._fetch_paginated("users", USERS_QUERY, "GetUsers", IndexerUser)

    async def fetch_debt_positions(self) -> list[IndexerDebtPosition]:
        return await self._fetch_paginated(
            "debtPositions", DEBT_POSITIONS_QUERY, "GetDebtPositions", IndexerDebtPosition
        )

    async def fetch_full_order_executions(self) -> list[IndexerOrderExecution]:
        return await self._fetch_paginated(
            "fullSellOrderExecutions",
            FULL_ORDER_EXECUTIONS_QUERY,
            "GetFullOrderExecutions",
            IndexerOrderExecution,
        )

    async def fetch_partial_order_executions(self) -> list[IndexerOrderExecution]:
        return await self._fetch_paginated(
            "partialSellOrderExecutions",
            PARTIAL_ORDER_EXECUTIONS_QUERY,
            "GetPartialOrderExecutions",
            IndexerOrderExecution,
        )

    async def fetch_cancelled_orders(self) -> list[IndexerCancelledOrder]:
        return await self._fetch_paginated(
            "cancelledOrders", CANCELLED_ORDERS_QUERY, "GetCancelledOrders", IndexerCancelledOrder
        )

    async def fetch_price_tokens(self) -> list[IndexerToken]:
        return await self._fetch_paginated("tokens", PRICE_TOKENS_QUERY, "GetPriceTokens", IndexerToken)

    async def fetch_asset_configurations(self) -> list[IndexerAssetConfiguration]:
        return await self._fetch_paginated(
            "assetConfigurations",
            ASSET_CONFIGURATIONS_QUERY,
            "QueryLiquidationThreshold",
            IndexerAssetConfiguration,
        )
