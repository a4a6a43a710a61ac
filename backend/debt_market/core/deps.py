"""FastAPI 依赖：从 app.state 取出应用启动时创建的服务"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.core.config import Settings
from debt_market.core.db import Database, get_session
from debt_market.services.debt_position_service import DebtPositionService
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.order_service import OrderService
from debt_market.services.signature_codec import SignatureCodec
from debt_market.services.sync_engine import SyncEngine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_codec(request: Request) -> SignatureCodec:
    return request.app.state.codec


def get_indexer_client(request: Request) -> IndexerClient:
    return request.app.state.indexer_client


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


def get_order_service(
    session: AsyncSession = Depends(get_session),
    codec: SignatureCodec = Depends(get_codec),
) -> OrderService:
    return OrderService(session, codec)


def get_debt_position_service(session: AsyncSession = Depends(get_session)) -> DebtPositionService:
    return DebtPositionService(session)
