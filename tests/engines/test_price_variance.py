"""
Tests for the price variance detector.

Covers:
- Variance, percent and amount
- Zero period price
- Default policy (any variance raises an NCR) and configured thresholds
- Reason text for auto-generated NCRs
"""

from decimal import Decimal

import pytest

from stock_engines.price_variance import (
    VarianceThresholds,
    build_price_variance_reason,
    check_price_variance,
    validate_price_variance_inputs,
)
from stock_kernel.exceptions import ValidationError


class TestCheckPriceVariance:

    def test_price_increase(self):
        result = check_price_variance(Decimal("26.00"), Decimal("25.50"), 100)

        assert result.has_variance is True
        assert result.variance == Decimal("0.5")
        assert result.variance_percent == Decimal("1.96")
        assert result.variance_amount == Decimal("50.00")
        assert result.exceeds_threshold is True
        assert result.direction == "increase"

    def test_no_variance(self):
        result = check_price_variance(Decimal("25.00"), Decimal("25.00"), 100)

        assert result.has_variance is False
        assert result.variance == Decimal("0")
        assert result.exceeds_threshold is False

    def test_price_decrease(self):
        result = check_price_variance(24, 25, 10)

        assert result.variance == Decimal("-1")
        assert result.variance_percent == Decimal("-4.00")
        assert result.variance_amount == Decimal("-10.00")
        assert result.direction == "decrease"
        assert result.exceeds_threshold is True

    def test_rounding(self):
        result = check_price_variance("10.12345", "10", "3")

        assert result.variance == Decimal("0.1235")
        assert result.variance_percent == Decimal("1.23")
        assert result.variance_amount == Decimal("0.37")

    def test_zero_period_price_with_positive_unit_price(self):
        result = check_price_variance(5, 0, 10)

        assert result.variance_percent == Decimal("100")
        assert result.exceeds_threshold is True

    def test_zero_period_price_and_zero_unit_price(self):
        result = check_price_variance(0, 0, 10)

        assert result.has_variance is False
        assert result.variance_percent == Decimal("0")


class TestThresholds:

    def test_percent_threshold_not_exceeded(self):
        thresholds = VarianceThresholds(threshold_percent=Decimal("2.5"))
        result = check_price_variance("26.00", "25.50", 100, thresholds)

        assert result.has_variance is True
        assert result.exceeds_threshold is False

    def test_amount_threshold_exceeded(self):
        thresholds = VarianceThresholds(
            threshold_percent=Decimal("2.5"), threshold_amount=Decimal("40")
        )
        result = check_price_variance("26.00", "25.50", 100, thresholds)

        assert result.exceeds_threshold is True

    def test_threshold_is_strict(self):
        """An amount exactly at the threshold does not exceed it."""
        thresholds = VarianceThresholds(threshold_amount=Decimal("50"))
        result = check_price_variance("26.00", "25.50", 100, thresholds)

        assert result.exceeds_threshold is False

    def test_negative_variance_compared_by_absolute_value(self):
        thresholds = VarianceThresholds(threshold_percent=Decimal("3"))
        result = check_price_variance(24, 25, 10, thresholds)

        assert result.exceeds_threshold is True

    def test_zero_thresholds_mean_not_configured(self):
        thresholds = VarianceThresholds(threshold_percent=Decimal("0"), threshold_amount=Decimal("0"))
        result = check_price_variance("25.51", "25.50", 1, thresholds)

        assert thresholds.percent_configured is False
        assert result.exceeds_threshold is True

    def test_no_variance_never_exceeds(self):
        thresholds = VarianceThresholds(threshold_percent=Decimal("0.01"))
        result = check_price_variance(10, 10, 1, thresholds)

        assert result.exceeds_threshold is False


class TestPreconditions:

    def test_negative_unit_price(self):
        with pytest.raises(ValidationError, match="unit_price"):
            check_price_variance(-1, 10, 1)

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError, match="quantity"):
            check_price_variance(10, 10, 0)

    def test_validate_inputs_lists_every_error(self):
        errors = validate_price_variance_inputs(-1, 5, 0)

        assert errors == [
            "Invalid unit_price: cannot be negative",
            "Invalid quantity: must be greater than zero",
        ]

    def test_validate_inputs_valid(self):
        assert validate_price_variance_inputs("26", "25.5", "100") == []


class TestReasonText:

    def test_reason_embeds_item_prices_and_variance(self):
        result = check_price_variance(Decimal("26.00"), Decimal("25.50"), 100)
        reason = build_price_variance_reason("Basmati Rice", "RICE-01", 100, result)

        assert "Item: Basmati Rice (RICE-01)" in reason
        assert "Quantity: 100\n" in reason
        assert "Expected Price (Period): SAR 25.5000" in reason
        assert "Actual Price (Delivery): SAR 26.0000" in reason
        assert "(1.96% increase)" in reason
        assert "Total Variance Amount: SAR 50.00" in reason

    def test_reason_currency(self):
        result = check_price_variance(9, 10, 2)
        reason = build_price_variance_reason("Oil", "OIL", 2, result, currency="USD")

        assert "USD -1.0000" in reason
        assert "decrease" in reason
