import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from debt_market.core.config import Settings, get_settings
from debt_market.core.db import Database
from debt_market.core.exceptions import (
    AllEndpointsFailedError,
    ConflictError,
    DuplicateActiveOrderError,
    DuplicateOrderError,
    InvalidOrderRequestError,
    InvalidSignatureError,
    OrderNotFoundError,
    OrderValidationError,
)
from debt_market.schemas.common import fail
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.signature_codec import SignatureCodec
from debt_market.services.sync_engine import SyncEngine

from .routers import market, orders

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, data: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=fail(error, data).model_dump())


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderValidationError)
    async def order_validation_error(request: Request, exc: OrderValidationError) -> JSONResponse:
        return _error(400, str(exc), {"errors": exc.errors})

    @app.exception_handler(InvalidOrderRequestError)
    async def invalid_order_request(request: Request, exc: InvalidOrderRequestError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(InvalidSignatureError)
    async def invalid_signature(request: Request, exc: InvalidSignatureError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError) -> JSONResponse:
        data = None
        if isinstance(exc, DuplicateActiveOrderError):
            data = {
                "existing_order_id": exc.existing_order_id,
                "existing_order_expiry": exc.existing_order_expiry,
            }
        elif isinstance(exc, DuplicateOrderError):
            data = {
                "existing_order_id": exc.existing_order_id,
                "existing_status": exc.existing_status,
            }
        return _error(409, str(exc), data)

    @app.exception_handler(OrderNotFoundError)
    async def order_not_found(request: Request, exc: OrderNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(AllEndpointsFailedError)
    async def upstream_unavailable(request: Request, exc: AllEndpointsFailedError) -> JSONResponse:
        logger.error(f"索引服务不可用: {exc}")
        return _error(502, "Indexer unavailable")

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"处理请求 {request.method} {request.url.path} 出错: {exc}", exc_info=True)
        return _error(500, "Internal server error")


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    indexer_client: IndexerClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    database = database or Database(settings.database_url)
    indexer_client = indexer_client or IndexerClient.from_settings(settings)

    app = FastAPI(title="Debt Market API")

    # 服务在此显式创建并挂到 app.state，路由通过依赖获取
    app.state.settings = settings
    app.state.database = database
    app.state.codec = SignatureCodec.from_settings(settings)
    app.state.indexer_client = indexer_client
    app.state.sync_engine = SyncEngine(
        database.session_maker,
        indexer_client,
        interval_seconds=settings.sync_interval_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(orders.router, prefix="/api")
    app.include_router(market.router, prefix="/api")

    @app.get("/")
    async def read_root():
        return {"message": "Debt Market API", "docs": "/docs"}

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info("正在初始化数据库...")
        await database.init_models()
        logger.info("数据库初始化完成")

        if settings.sync_enabled:
            logger.info("正在启动同步服务...")
            await app.state.sync_engine.start()
        else:
            logger.info("同步服务已禁用（SYNC_ENABLED=false），仅支持手动同步")

        logger.info("应用启动完成！")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        try:
            await app.state.sync_engine.stop()
        except Exception as e:
            logger.error(f"停止同步服务时出错: {e}", exc_info=True)
        await indexer_client.close()
        await database.dispose()

    return app
