"""Tests for end-to-end deal pricing."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from autotax.deal import (
    DealInput,
    DealType,
    Fee,
    FinanceTerms,
    FIProduct,
    LeaseTerms,
    TradeIn,
)
from autotax.deal_calculator import DealCalculator, compute_deal
from autotax.exceptions import MissingTerms, UnknownJurisdiction
from autotax.local_rates import LocalRateTable, RateSource
from autotax.payments import finance_payment
from autotax.policies import JurisdictionPolicyStore
from autotax.settings import EngineSettings

AS_OF = date(2024, 8, 1)


@pytest.fixture
def calc() -> DealCalculator:
    return DealCalculator(
        JurisdictionPolicyStore.bundled(),
        LocalRateTable.bundled(),
        EngineSettings(),
    )


def _deal(
    deal_type: DealType = DealType.CASH,
    state: str = "MI",
    **kw,
) -> DealInput:
    kw.setdefault("msrp", Decimal("32000"))
    kw.setdefault("selling_price", Decimal("30000"))
    return DealInput(
        deal_id="T-1",
        deal_type=deal_type,
        jurisdiction_code=state,
        deal_date=AS_OF,
        **kw,
    )


# ── Cash ─────────────────────────────────────────────────────────────


def test_cash_deal(calc: DealCalculator):
    result = calc.compute(
        _deal(trade_in=TradeIn(Decimal("15000")), fees=[Fee("TITLE", Decimal("15"))])
    )
    assert result.is_valid
    assert result.total_tax == Decimal("1140.00")
    # 30,000 + 15 + 1,140 - 15,000 trade
    assert result.cash.total_due == Decimal("16155.00")
    assert result.totals.total_due == Decimal("16155.00")
    assert result.monthly_payment == Decimal("0")
    assert result.finance is None
    assert result.lease is None
    assert result.policy_dataset == "2024.10"


# ── Finance ──────────────────────────────────────────────────────────


def test_finance_deal(calc: DealCalculator):
    result = calc.compute(
        _deal(
            DealType.FINANCE,
            trade_in=TradeIn(Decimal("15000"), Decimal("4000")),
            fees=[Fee("TITLE", Decimal("15"))],
            cash_down=Decimal("2000"),
            finance_terms=FinanceTerms(Decimal("6"), 60),
        )
    )
    finance = result.finance
    assert result.total_tax == Decimal("1140.00")
    assert finance.amount_financed == Decimal("18155.00")
    assert finance.payment == finance_payment(Decimal("18155.00"), Decimal("6"), 60)
    assert result.monthly_payment == finance.payment
    assert result.totals.total_sale_price == (
        finance.total_of_payments + Decimal("2000") + Decimal("11000")
    )
    assert result.totals.finance_charge == finance.finance_charge
    assert finance.schedule.total_principal == Decimal("18155.00")


def test_finance_without_terms_raises(calc: DealCalculator):
    with pytest.raises(MissingTerms):
        calc.compute(_deal(DealType.FINANCE))


# ── Lease ────────────────────────────────────────────────────────────


def test_lease_deal(calc: DealCalculator):
    result = calc.compute(
        _deal(
            DealType.LEASE,
            msrp=Decimal("30000"),
            lease_terms=LeaseTerms(
                36, Decimal("0.002"), residual_value=Decimal("20000")
            ),
        )
    )
    lease = result.lease
    assert lease.structure.base_payment == Decimal("377.78")
    assert lease.monthly_tax == Decimal("22.67")
    assert result.monthly_payment == Decimal("400.45")
    assert result.totals.total_due == Decimal("400.45")
    assert result.totals.amount_financed == Decimal("30000.00")
    assert result.totals.finance_charge == Decimal("3600.00")


def test_one_pay_lease_deal(calc: DealCalculator):
    result = calc.compute(
        _deal(
            DealType.LEASE,
            msrp=Decimal("30000"),
            lease_terms=LeaseTerms(
                36, Decimal("0.002"), residual_value=Decimal("20000"), one_pay=True
            ),
        )
    )
    assert result.lease.one_pay is True
    # 400.45 x 36 less 3%
    assert result.totals.total_due == Decimal("13983.71")
    assert result.totals.balance_due == Decimal("0")


def test_lease_without_terms_raises(calc: DealCalculator):
    with pytest.raises(MissingTerms):
        calc.compute(_deal(DealType.LEASE))


# ── Validation and structural errors ─────────────────────────────────


def test_invalid_deal_returns_errors(calc: DealCalculator, caplog):
    with caplog.at_level(logging.INFO, logger="autotax.deal_calculator"):
        result = calc.compute(_deal(selling_price=Decimal("0")))
    assert result.is_valid is False
    assert "Selling price must be greater than zero" in result.validation_errors
    assert result.tax is None
    assert result.total_tax == Decimal("0")
    assert "rejected" in caplog.text


def test_doc_fee_over_cap_is_invalid(calc: DealCalculator):
    result = calc.compute(_deal(fees=[Fee("DOC", Decimal("500"))]))
    assert result.is_valid is False


def test_unknown_jurisdiction_raises(calc: DealCalculator):
    with pytest.raises(UnknownJurisdiction):
        calc.compute(_deal(state="ZZ"))


def test_unknown_registration_state_raises(calc: DealCalculator):
    with pytest.raises(UnknownJurisdiction):
        calc.compute(_deal(registration_state="ZZ"))


# ── Reciprocity, local rates, profit ─────────────────────────────────


def test_out_of_state_deal_resolves_reciprocity(calc: DealCalculator):
    result = calc.compute(
        _deal(state="NC", registration_state="MI", origin_tax_paid_date=AS_OF)
    )
    assert result.reciprocity is not None
    assert result.reciprocity.credit == Decimal("900.00")
    assert result.reciprocity.owed == Decimal("900.00")


def test_in_state_deal_has_no_reciprocity(calc: DealCalculator):
    assert calc.compute(_deal()).reciprocity is None


def test_default_postal_code_from_settings():
    calc = DealCalculator(
        JurisdictionPolicyStore.bundled(),
        LocalRateTable.bundled(),
        EngineSettings(default_postal_code="90001"),
    )
    result = calc.compute(_deal(state="CA"))
    assert result.tax.local_rate_source == RateSource.EXACT
    assert result.tax.local_rate == Decimal("0.0225")


def test_profit_analysis(calc: DealCalculator):
    result = calc.compute(
        _deal(
            products=[
                FIProduct("GAP", Decimal("795"), Decimal("250")),
                FIProduct("VSC", Decimal("2195"), Decimal("900")),
            ]
        )
    )
    # Invoice defaults to 92% of MSRP: 32,000 x 0.92 = 29,440
    assert result.profit.front_end_gross == Decimal("560.00")
    assert result.profit.back_end_gross == Decimal("1840")
    assert result.profit.total_gross == Decimal("2400.00")


def test_profit_uses_invoice(calc: DealCalculator):
    result = calc.compute(_deal(invoice=Decimal("28500")))
    assert result.profit.front_end_gross == Decimal("1500")


def test_compute_deal_with_calculator(calc: DealCalculator):
    result = compute_deal(_deal(trade_in=TradeIn(Decimal("15000"))), calc)
    assert result.total_tax == Decimal("1140.00")
