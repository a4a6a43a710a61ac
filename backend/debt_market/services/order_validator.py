"""订单字段校验（与签名无关）

所有规则都会执行，返回全部违规项而不是第一个。
"""

import re
import time
from collections.abc import Iterable

from eth_utils import is_address

from debt_market.models.order import OrderType
from debt_market.schemas.order import FullSellOrderPayload, OrderTitlePayload, PartialSellOrderPayload

# 合约允许 startTime 最多早于当前时间 1 小时
START_TIME_GRACE_SECONDS = 3600

# 基点：10000 = 100%
MAX_BASIS_POINTS = 10000

# 数值列按有符号 64 位整数存储，超出范围的 nonce / 时间无法落库
MAX_STORABLE_INT = 2**63 - 1

_SIGNATURE_COMPONENT_RE = re.compile(r"0x[a-fA-F0-9]{64}")


def is_valid_address(value: str) -> bool:
    return isinstance(value, str) and is_address(value)


def is_uint_string(value: str) -> bool:
    """非负整数字符串（如 1e18 定点值）"""
    return isinstance(value, str) and re.fullmatch(r"[0-9]+", value) is not None


def _to_int(value) -> int | None:
    if isinstance(value, int):
        return value
    return int(value) if is_uint_string(value) else None


def is_valid_percentage(value, allow_zero: bool = False) -> bool:
    number = _to_int(value)
    if number is None:
        return False
    if number == 0:
        return allow_zero
    return 0 < number <= MAX_BASIS_POINTS


def percentages_sum_to_whole(values: Iterable) -> bool:
    numbers = [_to_int(value) for value in values]
    if any(number is None for number in numbers):
        return False
    return sum(numbers) == MAX_BASIS_POINTS


def _validate_ranges(payload: OrderTitlePayload) -> list[str]:
    errors = []
    if payload.debt_nonce > MAX_STORABLE_INT:
        errors.append("Debt nonce out of range")
    if payload.start_time > MAX_STORABLE_INT or payload.end_time > MAX_STORABLE_INT:
        errors.append("Start or end time out of range")
    return errors


def _validate_timing(payload: OrderTitlePayload, now: int) -> list[str]:
    errors = []
    if payload.start_time >= payload.end_time:
        errors.append("Start time must be before end time")
    if payload.end_time <= now:
        errors.append("Order has already expired")
    if payload.start_time < now - START_TIME_GRACE_SECONDS:
        errors.append("Start time too far in the past")
    return errors


def _validate_signature_shape(payload: OrderTitlePayload) -> list[str]:
    errors = []
    if payload.v < 27 or payload.v > 28:
        errors.append("Invalid signature v value")
    if not _SIGNATURE_COMPONENT_RE.fullmatch(payload.r or ""):
        errors.append("Invalid signature r component")
    if not _SIGNATURE_COMPONENT_RE.fullmatch(payload.s or ""):
        errors.append("Invalid signature s component")
    return errors


def validate_full_sell_order(payload: FullSellOrderPayload, now: int | None = None) -> list[str]:
    now = int(time.time()) if now is None else now
    errors: list[str] = []

    if not is_valid_address(payload.debt):
        errors.append("Invalid debt address")
    if not is_valid_address(payload.token):
        errors.append("Invalid token address")

    errors.extend(_validate_ranges(payload))
    errors.extend(_validate_timing(payload, now))

    if not is_uint_string(payload.trigger_hf):
        errors.append("Invalid trigger health factor")
    if not is_valid_percentage(payload.percent_of_equity):
        errors.append("Invalid percent of equity (must be 1-10000)")

    errors.extend(_validate_signature_shape(payload))
    return errors


def validate_partial_sell_order(payload: PartialSellOrderPayload, now: int | None = None) -> list[str]:
    now = int(time.time()) if now is None else now
    errors: list[str] = []

    if not is_valid_address(payload.debt):
        errors.append("Invalid debt address")
    if not is_valid_address(payload.repay_token):
        errors.append("Invalid repay token address")

    if not payload.collateral_out:
        errors.append("Must specify at least one collateral token")
    for collateral in payload.collateral_out:
        if not is_valid_address(collateral):
            errors.append(f"Invalid collateral address: {collateral}")

    if len(payload.percents) != len(payload.collateral_out):
        errors.append("Collateral tokens and percentages arrays must have same length")
    if not percentages_sum_to_whole(payload.percents):
        errors.append("Percentages must sum to 10000 (100%)")
    for percent in payload.percents:
        if not is_valid_percentage(percent, allow_zero=True):
            errors.append(f"Invalid percentage value: {percent}")

    errors.extend(_validate_ranges(payload))
    errors.extend(_validate_timing(payload, now))

    if not is_uint_string(payload.trigger_hf):
        errors.append("Invalid trigger health factor")
    if not is_uint_string(payload.repay_amount):
        errors.append("Invalid repay amount")
    if not is_valid_percentage(payload.bonus, allow_zero=True):
        errors.append("Invalid bonus percentage")

    if payload.interest_rate_mode not in (1, 2):
        errors.append("Interest rate mode must be 1 (stable) or 2 (variable)")

    errors.extend(_validate_signature_shape(payload))
    return errors


def validate_order(
    order_type: OrderType | str,
    payload: FullSellOrderPayload | PartialSellOrderPayload,
    now: int | None = None,
) -> list[str]:
    if OrderType(order_type) is OrderType.FULL:
        return validate_full_sell_order(payload, now)
    return validate_partial_sell_order(payload, now)
