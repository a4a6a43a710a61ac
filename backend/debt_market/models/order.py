"""链下签名卖单模型"""

import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text, text

from debt_market.core.db import Base


class OrderType(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class OrderStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"
    # 仅在被同一债务仓位的新订单取代时写入，其余情况由读取时根据 end_time 推导
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = (OrderStatus.EXECUTED.value, OrderStatus.CANCELLED.value)


class Order(Base):
    """订单表"""

    __tablename__ = "orders"
    __table_args__ = (
        # 每个 (债务仓位, 订单类型) 最多一个 ACTIVE 订单
        Index(
            "uq_orders_active_debt_type",
            "debt_address",
            "order_type",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_orders_debt_nonce_status", "debt_address", "debt_nonce", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # 订单ID（结构体哈希，唯一标识）
    order_id = Column(String(66), unique=True, nullable=False, index=True)

    # OrderTitle 哈希（链上成交 / 取消事件通过它匹配订单）
    title_hash = Column(String(66), nullable=False, index=True)

    order_type = Column(String(20), nullable=False, index=True)  # FULL / PARTIAL
    chain_id = Column(Integer, nullable=False, index=True)
    contract_address = Column(String(42), nullable=False)
    seller = Column(String(42), nullable=False, index=True)

    # 原始签名负载（JSON 字符串，二者有且仅有一个）
    full_sell_order = Column(Text, nullable=True)
    partial_sell_order = Column(Text, nullable=True)

    # 订单状态：ACTIVE, EXECUTED, CANCELLED, EXPIRED
    status = Column(String(20), nullable=False, default=OrderStatus.ACTIVE.value, index=True)

    # 从负载中冗余出的查询字段
    debt_address = Column(String(42), nullable=False, index=True)
    debt_nonce = Column(BigInteger, nullable=False)
    start_time = Column(BigInteger, nullable=False, index=True)  # unix 秒
    end_time = Column(BigInteger, nullable=False, index=True)  # unix 秒
    trigger_hf = Column(String(80), nullable=False)  # 1e18 定点整数字符串

    # 成交信息（仅 EXECUTED）
    buyer = Column(String(42), nullable=True, index=True)
    execution_tx_hash = Column(String(255), nullable=True)
    execution_block_number = Column(String(50), nullable=True)
    executed_at = Column(DateTime, nullable=True)
    usd_value = Column(String(80), nullable=True)
    usd_bonus = Column(String(80), nullable=True)

    # 取消信息（仅 CANCELLED）
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    # 时间戳
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
