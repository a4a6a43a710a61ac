"""资产风险参数模型"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from debt_market.core.db import Base


class AssetConfiguration(Base):
    """资产清算参数表（只读参考数据）"""

    __tablename__ = "asset_configurations"

    id = Column(Integer, primary_key=True, index=True)

    address = Column(String(42), unique=True, nullable=False, index=True)  # 代币地址
    symbol = Column(String(50), nullable=False, index=True)
    liquidation_threshold = Column(String(50), nullable=False)  # 比例（0.85）或基点（8500）
    liquidation_bonus = Column(String(50), nullable=False)
    reserve_factor = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_updated_at = Column(String(50), nullable=True, index=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
