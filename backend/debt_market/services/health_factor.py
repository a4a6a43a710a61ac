"""健康因子计算

HF = Σ(抵押数量 × 价格 × 清算阈值) / Σ(债务数量 × 价格)，结果按 1e18 定点整数字符串返回，
与链上 HF 以及订单的 triggerHF 可以直接比较。

降级策略（集中定义，调用方不再各自写默认值）：
- 缺少价格时按 DEFAULT_PRICE_USD 计算
- 缺少清算阈值时按 DEFAULT_LIQUIDATION_THRESHOLD 计算
- 总债务为 0、仓位未知或计算出错时返回 INFINITE_HEALTH_FACTOR
  （计算失败绝不能被解读为"可清算"）
"""

import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_FLOOR, Decimal, localcontext
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_PRICE_USD = Decimal("1.00")
DEFAULT_LIQUIDATION_THRESHOLD = Decimal("0.85")

# 999,999 × 1e18
INFINITE_HEALTH_FACTOR = "999999000000000000000000"

HF_SCALE = Decimal(10) ** 18
BASIS_POINTS = Decimal(10000)


def normalize_threshold(value: Any) -> Decimal:
    """清算阈值统一为比例：8250 -> 0.825，0.825 保持不变"""
    threshold = Decimal(str(value))
    if threshold > 1:
        return threshold / BASIS_POINTS
    return threshold


def _token_of(entry: Mapping[str, Any]) -> str:
    return str(entry["token"]).lower()


def calculate_health_factor(
    collaterals: Iterable[Mapping[str, Any]],
    debts: Iterable[Mapping[str, Any]],
    prices: Mapping[str, Any],
    thresholds: Mapping[str, Any],
) -> str:
    """
    计算健康因子

    Args:
        collaterals: [{token, amount}]，amount 为已按精度换算的十进制数量
        debts: [{token, amount}]
        prices: 代币地址（小写） -> USD 价格
        thresholds: 代币地址（小写） -> 清算阈值（比例或基点）

    Returns:
        1e18 定点整数字符串
    """
    try:
        debts = list(debts)
        if not debts:
            return INFINITE_HEALTH_FACTOR

        with localcontext() as ctx:
            ctx.prec = 80

            weighted_collateral = Decimal(0)
            for collateral in collaterals:
                token = _token_of(collateral)
                price = Decimal(str(prices[token])) if token in prices else DEFAULT_PRICE_USD
                threshold = (
                    normalize_threshold(thresholds[token])
                    if token in thresholds
                    else DEFAULT_LIQUIDATION_THRESHOLD
                )
                weighted_collateral += Decimal(str(collateral["amount"])) * price * threshold

            total_debt = Decimal(0)
            for debt in debts:
                token = _token_of(debt)
                price = Decimal(str(prices[token])) if token in prices else DEFAULT_PRICE_USD
                total_debt += Decimal(str(debt["amount"])) * price

            if total_debt == 0:
                return INFINITE_HEALTH_FACTOR

            scaled = (weighted_collateral / total_debt * HF_SCALE).to_integral_value(rounding=ROUND_FLOOR)
            return str(int(scaled))
    except Exception as e:
        logger.warning(f"健康因子计算失败，按无穷大处理: {e}")
        return INFINITE_HEALTH_FACTOR
