"""
Property-based tests for the pure engines.

Properties checked:
- WAC stays between the current WAC and the receipt price
- Quantity is conserved on receipt
- Consumption satisfies the balance equation for any valid input
- NCR buckets partition every NCR with a reconciliation effect
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from stock_engines.ncr import aggregate_ncr_impact, classify_ncr
from stock_engines.price_variance import VarianceThresholds, check_price_variance
from stock_engines.reconciliation import (
    ReconciliationAdjustments,
    StockMovements,
    calculate_consumption,
)
from stock_engines.wac import calculate_wac
from stock_kernel.domain.dtos import FinancialImpact, NCRStatus, NCRSummary

quantities = st.decimals(
    min_value=Decimal("0.0001"), max_value=Decimal("1000000"), places=4,
    allow_nan=False, allow_infinity=False,
)
prices = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=4,
    allow_nan=False, allow_infinity=False,
)
money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("10000000"), places=2,
    allow_nan=False, allow_infinity=False,
)
signed_money = st.decimals(
    min_value=Decimal("-10000000"), max_value=Decimal("10000000"), places=2,
    allow_nan=False, allow_infinity=False,
)


@composite
def ncr_summaries(draw):
    status = draw(st.sampled_from(list(NCRStatus)))
    impact = None
    if status == NCRStatus.RESOLVED:
        impact = draw(st.sampled_from(list(FinancialImpact)))
    return NCRSummary(
        id=uuid4(),
        ncr_no="NCR-2025-001",
        value=draw(money),
        status=status,
        financial_impact=impact,
    )


class TestWACProperties:

    @settings(max_examples=200)
    @given(
        current_qty=st.one_of(st.just(Decimal("0")), quantities),
        current_wac=prices,
        received_qty=quantities,
        receipt_price=prices,
    )
    def test_wac_bounded_by_inputs(self, current_qty, current_wac, received_qty, receipt_price):
        result = calculate_wac(current_qty, current_wac, received_qty, receipt_price)

        if current_qty == 0:
            assert result.new_wac == receipt_price.quantize(Decimal("0.0001"))
        else:
            low = min(current_wac, receipt_price).quantize(Decimal("0.0001"))
            high = max(current_wac, receipt_price).quantize(Decimal("0.0001"))
            assert low <= result.new_wac <= high

    @given(current_qty=quantities, received_qty=quantities, price=prices)
    def test_quantity_conserved(self, current_qty, received_qty, price):
        result = calculate_wac(current_qty, price, received_qty, price)

        assert result.new_quantity == current_qty + received_qty
        assert result.new_wac == price.quantize(Decimal("0.0001"))


class TestVarianceProperties:

    @given(unit_price=prices, period_price=prices, quantity=quantities)
    def test_default_policy_flags_any_variance(self, unit_price, period_price, quantity):
        result = check_price_variance(unit_price, period_price, quantity)

        assert result.has_variance == (unit_price != period_price)
        assert result.exceeds_threshold == result.has_variance

    @given(unit_price=prices, period_price=prices, quantity=quantities, threshold=money)
    def test_amount_threshold_is_strict(self, unit_price, period_price, quantity, threshold):
        result = check_price_variance(
            unit_price, period_price, quantity, VarianceThresholds(threshold_amount=threshold)
        )

        if not result.has_variance:
            assert result.exceeds_threshold is False
        elif threshold > 0:
            raw_amount = abs((unit_price - period_price) * quantity)
            assert result.exceeds_threshold == (raw_amount > threshold)


class TestConsumptionProperties:

    @given(
        opening=money, receipts=money, transfers_in=money, transfers_out=money,
        closing=money, back_charges=signed_money, credits=signed_money,
        condemnations=signed_money, other=signed_money, ncr_credits=money, ncr_losses=money,
    )
    def test_balance_equation(
        self, opening, receipts, transfers_in, transfers_out, closing,
        back_charges, credits, condemnations, other, ncr_credits, ncr_losses,
    ):
        result = calculate_consumption(
            StockMovements(
                opening_stock=opening,
                receipts=receipts,
                transfers_in=transfers_in,
                transfers_out=transfers_out,
                closing_stock=closing,
            ),
            ReconciliationAdjustments(
                back_charges=back_charges,
                credits=credits,
                condemnations=condemnations,
                other_adjustments=other,
                ncr_credits=ncr_credits,
                ncr_losses=ncr_losses,
            ),
        )

        adjustments = back_charges - credits - condemnations + other + ncr_losses - ncr_credits
        assert result.total_adjustments == adjustments
        assert result.consumption == (
            opening + receipts + transfers_in - transfers_out - closing + adjustments
        )


class TestNCRAggregationProperties:

    @given(ncrs=st.lists(ncr_summaries(), max_size=30))
    def test_buckets_partition_effective_ncrs(self, ncrs):
        summary = aggregate_ncr_impact(ncrs)

        effective = [n for n in ncrs if classify_ncr(n.status, n.financial_impact) is not None]
        buckets = (summary.credited, summary.losses, summary.pending, summary.open)
        assert sum(b.count for b in buckets) == len(effective)
        assert sum((b.total for b in buckets), Decimal("0")) == sum(
            (n.value for n in effective), Decimal("0")
        )
