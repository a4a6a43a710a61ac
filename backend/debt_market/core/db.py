import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)


Base = declarative_base()


class Database:
    """数据库连接持有者，由应用显式创建并传递给需要的服务"""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, future=True, echo=echo)
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    async def init_models(self) -> None:
        import debt_market.models.asset_configuration  # noqa: F401
        import debt_market.models.debt_position  # noqa: F401
        import debt_market.models.order  # noqa: F401
        import debt_market.models.sync_log  # noqa: F401
        import debt_market.models.token  # noqa: F401
        import debt_market.models.user  # noqa: F401

        async with self.engine.begin() as conn:
            # 创建所有表（包括 orders 表上的部分唯一索引）
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"数据库 ping 失败: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    database: Database = request.app.state.database
    async with database.session_maker() as session:
        yield session
