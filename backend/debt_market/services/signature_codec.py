"""订单类型化数据哈希与签名校验

合约历史上存在两种摘要方案：
- raw_struct_hash: 直接对结构体哈希签名（无前缀）
- eip712: keccak256("\\x19\\x01" || domainSeparator || structHash)

每个 (chainId, 合约地址) 只采用一种方案，由配置决定，不在调用处分支。
"""

import enum
import logging
import re
from dataclasses import dataclass

from eth_abi import encode
from eth_keys import keys
from eth_utils import keccak, to_checksum_address

from debt_market.core.config import Settings
from debt_market.models.order import OrderType
from debt_market.schemas.order import FullSellOrderPayload, OrderTitlePayload, PartialSellOrderPayload

logger = logging.getLogger(__name__)

# 类型哈希（必须与合约完全一致）
FULL_SELL_ORDER_TYPE_HASH = keccak(
    text="FullSellOrder(uint256 chainId,address contract,OrderTitle title,address token,uint256 percentOfEquity)"
)
PARTIAL_SELL_ORDER_TYPE_HASH = keccak(
    text=(
        "PartialSellOrder(uint256 chainId,address contract,OrderTitle title,uint256 interestRateMode,"
        "address[] collateralOut,uint256[] percents,address repayToken,uint256 repayAmount,uint256 bonus)"
    )
)
ORDER_TITLE_TYPE_HASH = keccak(
    text="OrderTitle(address debt,uint256 debtNonce,uint256 startTime,uint256 endTime,uint256 triggerHF)"
)
DOMAIN_TYPE_HASH = keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)

EIP712_PREFIX = b"\x19\x01"

_COMPONENT_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class DigestScheme(str, enum.Enum):
    EIP712 = "eip712"
    RAW_STRUCT_HASH = "raw_struct_hash"


@dataclass(frozen=True)
class SignatureCheck:
    valid: bool
    recovered: str | None = None


class SignatureCodec:
    """构建订单摘要并校验签名"""

    def __init__(
        self,
        domain_name: str = "AaveRouter",
        domain_version: str = "1",
        default_scheme: DigestScheme = DigestScheme.EIP712,
        overrides: dict[tuple[int, str], DigestScheme] | None = None,
    ) -> None:
        self._domain_name = domain_name
        self._domain_version = domain_version
        self._default_scheme = DigestScheme(default_scheme)
        self._overrides = {
            (chain_id, contract.lower()): DigestScheme(scheme)
            for (chain_id, contract), scheme in (overrides or {}).items()
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "SignatureCodec":
        return cls(
            domain_name=settings.eip712_domain_name,
            domain_version=settings.eip712_domain_version,
            default_scheme=DigestScheme(settings.signature_scheme),
            overrides={key: DigestScheme(value) for key, value in settings.scheme_overrides.items()},
        )

    def scheme_for(self, chain_id: int, contract_address: str) -> DigestScheme:
        """该部署合约所采用的摘要方案"""
        return self._overrides.get((chain_id, contract_address.lower()), self._default_scheme)

    def domain_separator(self, chain_id: int, contract_address: str) -> bytes:
        return keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [
                    DOMAIN_TYPE_HASH,
                    keccak(text=self._domain_name),
                    keccak(text=self._domain_version),
                    chain_id,
                    to_checksum_address(contract_address),
                ],
            )
        )

    @staticmethod
    def title_hash(payload: OrderTitlePayload) -> bytes:
        return keccak(
            encode(
                ["bytes32", "address", "uint256", "uint256", "uint256", "uint256"],
                [
                    ORDER_TITLE_TYPE_HASH,
                    to_checksum_address(payload.debt),
                    payload.debt_nonce,
                    payload.start_time,
                    payload.end_time,
                    int(payload.trigger_hf),
                ],
            )
        )

    def struct_hash(
        self,
        order_type: OrderType | str,
        chain_id: int,
        contract_address: str,
        payload: FullSellOrderPayload | PartialSellOrderPayload,
    ) -> bytes:
        contract = to_checksum_address(contract_address)
        title = self.title_hash(payload)

        if OrderType(order_type) is OrderType.FULL:
            return keccak(
                encode(
                    ["bytes32", "uint256", "address", "bytes32", "address", "uint256"],
                    [
                        FULL_SELL_ORDER_TYPE_HASH,
                        chain_id,
                        contract,
                        title,
                        to_checksum_address(payload.token),
                        int(payload.percent_of_equity),
                    ],
                )
            )

        return keccak(
            encode(
                [
                    "bytes32",
                    "uint256",
                    "address",
                    "bytes32",
                    "uint256",
                    "address[]",
                    "uint256[]",
                    "address",
                    "uint256",
                    "uint256",
                ],
                [
                    PARTIAL_SELL_ORDER_TYPE_HASH,
                    chain_id,
                    contract,
                    title,
                    payload.interest_rate_mode,
                    [to_checksum_address(token) for token in payload.collateral_out],
                    [int(percent) for percent in payload.percents],
                    to_checksum_address(payload.repay_token),
                    int(payload.repay_amount),
                    int(payload.bonus),
                ],
            )
        )

    def digest(
        self,
        order_type: OrderType | str,
        chain_id: int,
        contract_address: str,
        payload: FullSellOrderPayload | PartialSellOrderPayload,
    ) -> bytes:
        """签名实际覆盖的 32 字节摘要"""
        struct_hash = self.struct_hash(order_type, chain_id, contract_address, payload)
        if self.scheme_for(chain_id, contract_address) is DigestScheme.RAW_STRUCT_HASH:
            return struct_hash
        return keccak(EIP712_PREFIX + self.domain_separator(chain_id, contract_address) + struct_hash)

    def recover(
        self,
        order_type: OrderType | str,
        chain_id: int,
        contract_address: str,
        payload: FullSellOrderPayload | PartialSellOrderPayload,
    ) -> str:
        """从签名恢复签名者地址（校验和格式），签名分量非法时抛 ValueError"""
        if payload.v not in (27, 28):
            raise ValueError(f"invalid v: {payload.v}")
        if not _COMPONENT_RE.match(payload.r) or not _COMPONENT_RE.match(payload.s):
            raise ValueError("r / s must be 32-byte hex strings")

        signature = keys.Signature(vrs=(payload.v - 27, int(payload.r, 16), int(payload.s, 16)))
        digest = self.digest(order_type, chain_id, contract_address, payload)
        return signature.recover_public_key_from_msg_hash(digest).to_checksum_address()

    def verify(
        self,
        order_type: OrderType | str,
        chain_id: int,
        contract_address: str,
        payload: FullSellOrderPayload | PartialSellOrderPayload,
        expected_signer: str,
    ) -> SignatureCheck:
        """校验签名是否由 expected_signer 签出；任何异常都视为无效签名"""
        try:
            recovered = self.recover(order_type, chain_id, contract_address, payload)
        except Exception as e:
            logger.debug(f"签名恢复失败: {e}")
            return SignatureCheck(valid=False)

        return SignatureCheck(
            valid=recovered.lower() == expected_signer.lower(),
            recovered=recovered,
        )
