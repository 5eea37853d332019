"""Tests for cost aggregation."""

from decimal import Decimal

import pytest

from launchpad_federation.core.errors import ValidationError
from launchpad_federation.services.cost import Money, SelectedDirectory, calculate


def _pick(instance_url: str, directory_id: str, amount: str, currency: str = "USD"):
    return SelectedDirectory(instance_url, directory_id, Money(Decimal(amount), currency))


def test_calculate_sums_fees_in_input_order() -> None:
    breakdown = calculate(
        [
            _pick("https://a.example", "main", "5"),
            _pick("https://b.example", "free", "0"),
            _pick("https://c.example", "tools", "12.50"),
        ]
    )

    assert breakdown.total == Decimal("17.50")
    assert breakdown.currency == "USD"
    assert [item.directory_id for item in breakdown.items] == ["main", "free", "tools"]
    assert breakdown.requires_payment is True


def test_free_selection_does_not_require_payment() -> None:
    breakdown = calculate([_pick("https://b.example", "free", "0")])

    assert breakdown.total == Decimal("0")
    assert breakdown.requires_payment is False


def test_decimal_amounts_do_not_drift() -> None:
    breakdown = calculate([_pick(f"https://{i}.example", "d", "0.10") for i in range(3)])

    assert breakdown.total == Decimal("0.30")


def test_empty_selection_is_rejected() -> None:
    with pytest.raises(ValidationError):
        calculate([])


def test_mixed_currencies_are_rejected() -> None:
    with pytest.raises(ValidationError, match="currency"):
        calculate(
            [
                _pick("https://a.example", "main", "5", "USD"),
                _pick("https://b.example", "main", "5", "EUR"),
            ]
        )


def test_negative_fee_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Negative fee"):
        calculate([_pick("https://a.example", "main", "-1")])


class TestMoneyParse:
    def test_missing_fee_is_free_in_default_currency(self) -> None:
        assert Money.parse(None, "usd") == Money(Decimal("0"), "USD")

    def test_mapping_fee(self) -> None:
        assert Money.parse({"amount": "9.99", "currency": "eur"}, "USD") == Money(
            Decimal("9.99"), "EUR"
        )

    def test_bare_number_uses_default_currency(self) -> None:
        assert Money.parse(3, "USD") == Money(Decimal("3"), "USD")

    def test_float_fee_is_converted_through_its_string_form(self) -> None:
        assert Money.parse({"amount": 0.1}, "USD").amount == Decimal("0.1")

    @pytest.mark.parametrize("raw", ["abc", {"amount": "NaN"}, {"amount": "Infinity"}])
    def test_invalid_amounts(self, raw) -> None:
        with pytest.raises(ValidationError):
            Money.parse(raw, "USD")
