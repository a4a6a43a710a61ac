"""Constants and helpers shared by test modules."""
from __future__ import annotations

from datetime import datetime, timezone

from eth_keys import keys

from debt_market.models.order import Order, OrderStatus, OrderType
from debt_market.schemas.indexer import IndexerDebtPosition
from debt_market.services.signature_codec import SignatureCodec

# Hardhat account #0 / #1
SELLER_KEY = keys.PrivateKey(bytes.fromhex("ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"))
OTHER_KEY = keys.PrivateKey(bytes.fromhex("59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"))

CHAIN_ID = 1337
CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
DEBT = "0x1000000000000000000000000000000000000001"
OTHER_DEBT = "0x1000000000000000000000000000000000000002"
USDC = "0x2000000000000000000000000000000000000002"
WETH = "0x3000000000000000000000000000000000000003"
DAI = "0x4000000000000000000000000000000000000004"
BUYER = "0x5000000000000000000000000000000000000005"

ONE_HF = 10**18


def sign_payload(
    codec: SignatureCodec,
    order_type: OrderType,
    payload,
    private_key: keys.PrivateKey = SELLER_KEY,
    chain_id: int = CHAIN_ID,
    contract: str = CONTRACT,
):
    """Return a copy of ``payload`` carrying a signature over the codec's digest."""
    digest = codec.digest(order_type, chain_id, contract, payload)
    signature = private_key.sign_msg_hash(digest)
    return payload.model_copy(
        update={
            "v": signature.v + 27,
            "r": "0x" + signature.r.to_bytes(32, "big").hex(),
            "s": "0x" + signature.s.to_bytes(32, "big").hex(),
        }
    )


def make_order(
    order_id: str,
    *,
    now: int,
    order_type: str = OrderType.FULL.value,
    debt_address: str = DEBT,
    debt_nonce: int = 0,
    start_offset: int = -60,
    end_offset: int = 3600,
    trigger_hf: str = str(2 * ONE_HF),
    status: str = OrderStatus.ACTIVE.value,
    title_hash: str | None = None,
) -> Order:
    """Unsigned Order row for repository-level tests."""
    return Order(
        order_id=order_id,
        title_hash=title_hash or f"title-{order_id}",
        order_type=order_type,
        chain_id=CHAIN_ID,
        contract_address=CONTRACT,
        seller="0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
        full_sell_order="{}" if order_type == OrderType.FULL.value else None,
        partial_sell_order="{}" if order_type == OrderType.PARTIAL.value else None,
        status=status,
        debt_address=debt_address,
        debt_nonce=debt_nonce,
        start_time=now + start_offset,
        end_time=now + end_offset,
        trigger_hf=trigger_hf,
    )


def utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, timezone.utc)


def make_indexer_position(
    address: str = DEBT,
    nonce: int = 0,
    collateral: str = "10",
    debt: str = "5",
    last_updated_at: str = "1700000000",
) -> IndexerDebtPosition:
    """Indexer debt position with WETH collateral and USDC debt."""
    return IndexerDebtPosition.model_validate(
        {
            "id": address,
            "owner": {"id": "0x9000000000000000000000000000000000000009"},
            "nonce": nonce,
            "collaterals": [{"token": {"id": WETH, "symbol": "WETH", "decimals": 18}, "amount": collateral}],
            "debts": [{"token": {"id": USDC, "symbol": "USDC", "decimals": 6}, "amount": debt, "interestRateMode": "2"}],
            "lastUpdatedAt": last_updated_at,
        }
    )
