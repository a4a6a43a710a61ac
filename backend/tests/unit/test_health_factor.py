"""Tests for health-factor computation and its degrade-safe defaults."""
from __future__ import annotations

from decimal import Decimal

from debt_market.services.health_factor import (
    DEFAULT_LIQUIDATION_THRESHOLD,
    DEFAULT_PRICE_USD,
    INFINITE_HEALTH_FACTOR,
    calculate_health_factor,
    normalize_threshold,
)
from factories import DAI, USDC, WETH


class TestHealthFactor:
    def test_no_debt_is_infinite(self) -> None:
        assert calculate_health_factor([{"token": WETH, "amount": "1"}], [], {}, {}) == INFINITE_HEALTH_FACTOR

    def test_zero_debt_value_is_infinite(self) -> None:
        hf = calculate_health_factor(
            [{"token": WETH, "amount": "1"}],
            [{"token": DAI, "amount": "0"}],
            {},
            {},
        )
        assert hf == INFINITE_HEALTH_FACTOR

    def test_unknown_references_use_defaults(self) -> None:
        # 10 * 1.00 * 0.85 / 5 * 1.00 = 1.7
        hf = calculate_health_factor(
            [{"token": USDC, "amount": "10"}],
            [{"token": DAI, "amount": "5"}],
            {},
            {},
        )
        assert DEFAULT_PRICE_USD == Decimal("1.00")
        assert DEFAULT_LIQUIDATION_THRESHOLD == Decimal("0.85")
        assert hf == "1700000000000000000"

    def test_prices_and_basis_point_thresholds(self) -> None:
        # 2 WETH * 2000 * 0.825 / 1000 DAI = 3.3
        hf = calculate_health_factor(
            [{"token": WETH, "amount": "2"}],
            [{"token": DAI, "amount": "1000"}],
            {WETH: "2000", DAI: "1.0"},
            {WETH: "8250"},
        )
        assert hf == "3300000000000000000"

    def test_ratio_thresholds_and_multiple_assets(self) -> None:
        # (1 WETH * 2000 * 0.8 + 500 USDC * 1 * 0.9) / (1000 DAI * 1) = 2.05
        hf = calculate_health_factor(
            [{"token": WETH, "amount": "1"}, {"token": USDC, "amount": "500"}],
            [{"token": DAI, "amount": "1000"}],
            {WETH: "2000", USDC: "1", DAI: "1"},
            {WETH: "0.8", USDC: "0.9"},
        )
        assert hf == "2050000000000000000"

    def test_token_addresses_match_case_insensitively(self) -> None:
        hf = calculate_health_factor(
            [{"token": WETH.upper().replace("0X", "0x"), "amount": "1"}],
            [{"token": DAI, "amount": "1000"}],
            {WETH: "2000"},
            {WETH: "0.5"},
        )
        assert hf == "1000000000000000000"

    def test_result_is_floored(self) -> None:
        hf = calculate_health_factor(
            [{"token": USDC, "amount": "1"}],
            [{"token": DAI, "amount": "3"}],
            {},
            {USDC: "1"},
        )
        assert hf == "333333333333333333"

    def test_bad_amount_fails_safe(self) -> None:
        hf = calculate_health_factor(
            [{"token": USDC, "amount": "lots"}],
            [{"token": DAI, "amount": "3"}],
            {},
            {},
        )
        assert hf == INFINITE_HEALTH_FACTOR

    def test_missing_field_fails_safe(self) -> None:
        assert calculate_health_factor([{"amount": "1"}], [{"token": DAI, "amount": "3"}], {}, {}) == INFINITE_HEALTH_FACTOR


class TestNormalizeThreshold:
    def test_basis_points(self) -> None:
        assert normalize_threshold("8500") == Decimal("0.85")

    def test_ratio_kept(self) -> None:
        assert normalize_threshold("0.85") == Decimal("0.85")
        assert normalize_threshold("1") == Decimal("1")
