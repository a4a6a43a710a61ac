"""订单可执行性判定"""

import enum
import re
import time

from debt_market.models.order import OrderStatus



class Verdict(str, enum.Enum):
    NOT_ACTIVE = "NOT_ACTIVE"
    EXPIRED = "EXPIRED"
    NOT_STARTED = "NOT_STARTED"
    INVALID_HF = "INVALID_HF"
    HF_TOO_HIGH = "HF_TOO_HIGH"
    EXECUTABLE = "EXECUTABLE"


# API 中 can_execute 字段的展示文本
CAN_EXECUTE_LABELS = {
    Verdict.EXECUTABLE: "YES",
    Verdict.NOT_ACTIVE: "NO - non active",
    Verdict.EXPIRED: "NO - expired",
    Verdict.NOT_STARTED: "NO - not started",
    Verdict.INVALID_HF: "NO - invalid HF format",
    Verdict.HF_TOO_HIGH: "NO - HF too high",
}


def evaluate(
    start_time: int,
    end_time: int,
    status: str,
    trigger_hf: str | None,
    current_hf: str | None,
    now: int | None = None,
) -> Verdict:
    """
    判定订单当前能否执行

    检查顺序固定为：状态 -> 过期 -> 未开始 -> HF 格式 -> HF 比较。
    已过期的订单即使 HF 无法解析也返回 EXPIRED。
    """
    now = int(time.time()) if now is None else now

    if status != OrderStatus.ACTIVE.value:
        return Verdict.NOT_ACTIVE
    if now > end_time:
        return Verdict.EXPIRED
    if now < start_time:
        return Verdict.NOT_STARTED

    if not isinstance(trigger_hf, str) or re.fullmatch(r"[0-9]+", trigger_hf) is None:
        return Verdict.INVALID_HF
    if not isinstance(current_hf, str) or re.fullmatch(r"[0-9]+", current_hf) is None:
        return Verdict.INVALID_HF

    # 仓位 HF 必须 <= 触发值才可执行
    if int(current_hf) > int(trigger_hf):
        return Verdict.HF_TOO_HIGH
    return Verdict.EXECUTABLE


def can_execute_label(verdict: Verdict) -> str:
    return CAN_EXECUTE_LABELS[verdict]
