"""Shared test fixtures: settings, temporary database and signed-order factories."""
from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from eth_keys import keys
from sqlalchemy.ext.asyncio import AsyncSession

from debt_market.core.config import Settings
from debt_market.core.db import Database
from debt_market.models.order import OrderType
from debt_market.schemas.order import CreateOrderRequest, FullSellOrderPayload, PartialSellOrderPayload
from debt_market.services.indexer_client import IndexerClient
from debt_market.services.signature_codec import SignatureCodec
from factories import CHAIN_ID, CONTRACT, DAI, DEBT, ONE_HF, SELLER_KEY, USDC, WETH, sign_payload

DATASETS = (
    "users",
    "debt_positions",
    "full_order_executions",
    "partial_order_executions",
    "cancelled_orders",
    "price_tokens",
    "asset_configurations",
)


# ---------------------------------------------------------------------------
# Config / infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        indexer_api_url="http://indexer.test/graphql",
        sync_enabled=False,
    )


@pytest_asyncio.fixture()
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database(settings.database_url)
    await db.init_models()
    yield db
    await db.dispose()


@pytest_asyncio.fixture()
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.session_maker() as s:
        yield s


@pytest.fixture()
def codec() -> SignatureCodec:
    return SignatureCodec()


@pytest.fixture()
def now() -> int:
    return int(time.time())


@pytest.fixture()
def seller_address() -> str:
    return SELLER_KEY.public_key.to_checksum_address()


@pytest.fixture()
def indexer_mock() -> AsyncMock:
    """IndexerClient stand-in whose fetchers all return empty datasets."""
    client = AsyncMock(spec=IndexerClient)
    for name in DATASETS:
        getattr(client, f"fetch_{name}").return_value = []
    return client


# ---------------------------------------------------------------------------
# Order factories
# ---------------------------------------------------------------------------


def _unsigned_title(now: int, overrides: dict) -> dict:
    fields = {
        "debt": DEBT,
        "debt_nonce": 0,
        "start_time": now - 60,
        "end_time": now + 3600,
        "trigger_hf": str(2 * ONE_HF),
        "v": 27,
        "r": "0x" + "00" * 32,
        "s": "0x" + "00" * 32,
    }
    fields.update(overrides)
    return fields


@pytest.fixture()
def make_full_payload(now: int) -> Callable[..., FullSellOrderPayload]:
    def make(**overrides) -> FullSellOrderPayload:
        fields = _unsigned_title(now, {"token": USDC, "percent_of_equity": "10000", **overrides})
        return FullSellOrderPayload(**fields)

    return make


@pytest.fixture()
def make_partial_payload(now: int) -> Callable[..., PartialSellOrderPayload]:
    def make(**overrides) -> PartialSellOrderPayload:
        fields = _unsigned_title(
            now,
            {
                "interest_rate_mode": 2,
                "collateral_out": [WETH, USDC],
                "percents": ["6000", "4000"],
                "repay_token": DAI,
                "repay_amount": "500000000000000000000",
                "bonus": "200",
                **overrides,
            },
        )
        return PartialSellOrderPayload(**fields)

    return make


@pytest.fixture()
def make_full_request(
    codec: SignatureCodec,
    make_full_payload,
    seller_address: str,
) -> Callable[..., CreateOrderRequest]:
    def make(private_key: keys.PrivateKey = SELLER_KEY, **overrides) -> CreateOrderRequest:
        payload = sign_payload(codec, OrderType.FULL, make_full_payload(**overrides), private_key)
        return CreateOrderRequest(
            order_type="FULL",
            chain_id=CHAIN_ID,
            contract_address=CONTRACT,
            seller=seller_address,
            full_sell_order=payload,
        )

    return make


@pytest.fixture()
def make_partial_request(
    codec: SignatureCodec,
    make_partial_payload,
    seller_address: str,
) -> Callable[..., CreateOrderRequest]:
    def make(private_key: keys.PrivateKey = SELLER_KEY, **overrides) -> CreateOrderRequest:
        payload = sign_payload(codec, OrderType.PARTIAL, make_partial_payload(**overrides), private_key)
        return CreateOrderRequest(
            order_type="PARTIAL",
            chain_id=CHAIN_ID,
            contract_address=CONTRACT,
            seller=seller_address,
            partial_sell_order=payload,
        )

    return make
