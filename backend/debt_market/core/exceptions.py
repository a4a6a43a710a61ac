"""业务异常定义"""

from collections.abc import Sequence


class DebtMarketError(Exception):
    """所有业务异常的基类"""


class OrderValidationError(DebtMarketError):
    """订单字段校验失败，携带全部违规项"""

    def __init__(self, errors: Sequence[str], order_type: str) -> None:
        self.errors = list(errors)
        self.order_type = order_type
        label = "full" if order_type == "FULL" else "partial"
        super().__init__(f"Invalid {label} sell order: {', '.join(self.errors)}")


class InvalidSignatureError(DebtMarketError):
    """签名无法恢复出声明的卖家地址"""

    def __init__(self, recovered: str | None = None) -> None:
        self.recovered = recovered
        super().__init__("Invalid signature")


class ConflictError(DebtMarketError):
    """与已存储订单冲突"""


class DuplicateActiveOrderError(ConflictError):
    def __init__(self, existing_order_id: str, existing_order_expiry: int | None, order_type: str) -> None:
        self.existing_order_id = existing_order_id
        self.existing_order_expiry = existing_order_expiry
        super().__init__(
            f"An active {order_type} order already exists for this debt position. "
            "To create a new order, you must either: (1) cancel the existing order on-chain "
            "to increment the debt nonce, or (2) wait for the existing order to expire."
        )


class DuplicateOrderError(ConflictError):
    """同一份已签名订单重复提交"""

    def __init__(self, existing_order_id: str, existing_status: str) -> None:
        self.existing_order_id = existing_order_id
        self.existing_status = existing_status
        super().__init__(f"Order {existing_order_id} was already submitted (status: {existing_status})")


class OrderNotFoundError(DebtMarketError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__("Order not found")


class UpstreamUnavailableError(DebtMarketError):
    """索引服务不可用"""


class AllEndpointsFailedError(UpstreamUnavailableError):
    """所有索引服务地址都请求失败"""

    def __init__(self, endpoint_count: int, last_error: Exception | None) -> None:
        self.endpoint_count = endpoint_count
        self.last_error = last_error
        super().__init__(f"All {endpoint_count} indexer endpoints failed, last error: {last_error}")


class IndexerResponseError(UpstreamUnavailableError):
    """单个索引服务地址返回了无法使用的响应（HTTP 错误、非 JSON、只有 errors 没有 data）"""


class InvalidOrderRequestError(DebtMarketError):
    """请求体与订单类型不匹配（负载缺失或多余、合约 / 卖家地址无效）"""
