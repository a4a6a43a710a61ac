"""用户模型"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from debt_market.core.db import Base


class User(Base):
    """用户表（来自索引服务的聚合统计）"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    address = Column(String(42), unique=True, nullable=False, index=True)
    nonce = Column(String(80), nullable=False, default="0")
    total_positions = Column(String(80), nullable=False, default="0")
    total_orders_executed = Column(String(80), nullable=False, default="0")
    total_volume_usd = Column(String(80), nullable=False, default="0")
    last_updated_at = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
