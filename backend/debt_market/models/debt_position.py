"""债务仓位模型（链上仓位的本地镜像）"""

import json
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from debt_market.core.db import Base


class DebtPosition(Base):
    """债务仓位表，只由同步任务整体覆盖写入"""

    __tablename__ = "debt_positions"

    id = Column(Integer, primary_key=True, index=True)

    # 仓位地址（唯一标识）
    address = Column(String(42), unique=True, nullable=False, index=True)
    owner = Column(String(42), nullable=False, index=True)

    # 每次链上状态变更都会递增
    nonce = Column(BigInteger, nullable=False, default=0)

    # 抵押 / 债务列表（JSON 字符串）
    # 抵押: [{token, symbol, decimals, amount}]
    # 债务: [{token, symbol, decimals, amount, interest_rate_mode}]
    collaterals = Column(Text, nullable=False, default="[]")
    debts = Column(Text, nullable=False, default="[]")

    last_updated_at = Column(String(50), nullable=True)  # 索引服务提供的更新时间戳

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    @property
    def collateral_list(self) -> list[dict]:
        return json.loads(self.collaterals or "[]")

    @property
    def debt_list(self) -> list[dict]:
        return json.loads(self.debts or "[]")
