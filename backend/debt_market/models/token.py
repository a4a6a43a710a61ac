"""代币价格模型"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from debt_market.core.db import Base


class Token(Base):
    """代币价格表（只读参考数据）"""

    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True, index=True)

    address = Column(String(42), unique=True, nullable=False, index=True)
    symbol = Column(String(50), nullable=False, index=True)
    decimals = Column(Integer, nullable=False, default=18)
    price_usd = Column(String(80), nullable=False)  # 十进制字符串，如 "1.0002"
    oracle_source = Column(String(255), nullable=True)
    last_updated_at = Column(String(50), nullable=True, index=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
