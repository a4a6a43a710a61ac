"""同步日志模型"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from debt_market.core.db import Base


class SyncLog(Base):
    """同步日志表，每轮同步中每个数据集记录一行"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    sync_type = Column(String(50), nullable=False, index=True)  # 数据集名称（如 "debt_positions"）
    sync_time = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    status = Column(String(20), default="success", nullable=False)  # success, failed
    message = Column(String(500), nullable=True)
    record_count = Column(Integer, default=0, nullable=False)
