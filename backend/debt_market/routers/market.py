from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.core.config import Settings
from debt_market.core.db import Database, get_session
from debt_market.core.deps import (
    get_app_settings,
    get_database,
    get_debt_position_service,
    get_indexer_client,
    get_sync_engine,
)
from debt_market.models.asset_configuration import AssetConfiguration
from debt_market.models.debt_position import DebtPosition
from debt_market.models.token import Token
from debt_market.models.user import User
from debt_market.schemas.common import ApiResponse, fail, ok
from debt_market.schemas.market import (
    AssetConfigurationResponse,
    GraphQLRequest,
    SyncLogResponse,
    TokenResponse,
    UserResponse,
)
from debt_market.services.debt_position_service import DebtPositionService
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.repositories.market_repository import MarketRepository
from debt_market.services.repositories.order_repository import OrderRepository
from debt_market.services.repositories.sync_log_repository import SyncLogRepository
from debt_market.services.sync_engine import SyncEngine

router = APIRouter(tags=["market"])


def _sync_status(engine: SyncEngine, settings: Settings) -> dict:
    return {
        "enabled": settings.sync_enabled,
        "interval_seconds": engine.interval_seconds,
        "running": engine.is_running,
        "scheduled": engine.is_scheduled,
        "last_report": engine.last_report.to_dict() if engine.last_report else None,
    }


@router.get("/health", response_model=ApiResponse)
async def health(
    database: Database = Depends(get_database),
    engine: SyncEngine = Depends(get_sync_engine),
    settings: Settings = Depends(get_app_settings),
):
    """数据库连通性与同步状态"""
    database_ok = await database.ping()
    data = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "connected" if database_ok else "disconnected",
        "sync": _sync_status(engine, settings),
    }
    if not database_ok:
        return JSONResponse(status_code=503, content=fail("Database unavailable", data).model_dump())
    return ok(data)


@router.get("/stats", response_model=ApiResponse)
async def stats(
    session: AsyncSession = Depends(get_session),
    engine: SyncEngine = Depends(get_sync_engine),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse:
    repo = MarketRepository(session)
    orders_by_status = await OrderRepository(session).count_by_status()
    last_syncs = await SyncLogRepository(session).latest_per_type()
    return ok(
        {
            "users": await repo.count(User),
            "positions": await repo.count(DebtPosition),
            "tokens": await repo.count(Token),
            "asset_configurations": await repo.count(AssetConfiguration),
            "orders": sum(orders_by_status.values()),
            "orders_by_status": orders_by_status,
            "last_syncs": [SyncLogResponse.model_validate(log) for log in last_syncs],
            "sync": _sync_status(engine, settings),
        }
    )


@router.get("/positions/{address}/health-factor", response_model=ApiResponse)
async def get_health_factor(
    address: str,
    service: DebtPositionService = Depends(get_debt_position_service),
) -> ApiResponse:
    health_factor = await service.get_current_health_factor(address)
    return ok({"address": address.lower(), "health_factor": health_factor})


@router.get("/positions", response_model=ApiResponse)
async def list_positions(
    owner: str | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: DebtPositionService = Depends(get_debt_position_service),
) -> ApiResponse:
    positions = await service.list_positions(owner=owner, limit=limit, offset=offset)
    return ok({"positions": positions, "count": len(positions)})


@router.get("/users", response_model=ApiResponse)
async def list_users(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse:
    users = await MarketRepository(session).list_users(limit=limit, offset=offset)
    return ok([UserResponse.model_validate(user) for user in users])


@router.get("/prices", response_model=ApiResponse)
async def list_prices(
    symbol: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse:
    tokens = await MarketRepository(session).list_tokens(symbol=symbol)
    return ok([TokenResponse.model_validate(token) for token in tokens])


@router.get("/liquidation-thresholds", response_model=ApiResponse)
async def list_liquidation_thresholds(
    symbol: str | None = None,
    is_active: bool | None = None,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse:
    configs = await MarketRepository(session).list_asset_configurations(symbol=symbol, is_active=is_active)
    return ok([AssetConfigurationResponse.model_validate(config) for config in configs])


@router.post("/sync", response_model=ApiResponse)
async def force_sync(engine: SyncEngine = Depends(get_sync_engine)) -> ApiResponse:
    """立即执行一轮同步；已有一轮在进行时返回 skipped"""
    report = await engine.run_once()
    return ok(report.to_dict())


@router.post("/subgraph", response_model=ApiResponse)
async def proxy_subgraph(
    request: GraphQLRequest,
    client: IndexerClient = Depends(get_indexer_client),
) -> ApiResponse:
    """GraphQL 透传（带故障转移）"""
    result = await client.execute_query(request.query, request.variables, request.operation_name)
    return ok(result)
