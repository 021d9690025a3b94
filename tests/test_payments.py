"""Tests for finance, amortization and lease payment math."""

from datetime import date
from decimal import Decimal

import pytest

from autotax.deal import (
    DealInput,
    DealType,
    Fee,
    Rebate,
    FinanceTerms,
    FIProduct,
    LeaseTerms,
    PaymentFrequency,
    TradeIn,
)
from autotax.exceptions import DealInputError
from autotax.payments import (
    amortization_schedule,
    amount_financed,
    apr_to_money_factor,
    calculate_finance,
    calculate_lease,
    cash_totals,
    effective_money_factor,
    finance_payment,
    money_factor_to_apr,
    periods_for_term,
    residual_value,
    solve_apr,
    structure_lease,
    total_interest,
)
from autotax.policies import JurisdictionPolicyStore
from autotax.pricing import PriceBreakdown, assemble_price

AS_OF = date(2024, 8, 1)


@pytest.fixture
def store() -> JurisdictionPolicyStore:
    return JurisdictionPolicyStore.bundled()


def _price(
    store: JurisdictionPolicyStore,
    deal_type: DealType = DealType.CASH,
    **kw,
) -> PriceBreakdown:
    kw.setdefault("msrp", Decimal("30000"))
    kw.setdefault("selling_price", Decimal("30000"))
    deal = DealInput(deal_type=deal_type, jurisdiction_code="MI", deal_date=AS_OF, **kw)
    return assemble_price(deal, store.get("MI", AS_OF))


def _lease_terms(**kw) -> LeaseTerms:
    kw.setdefault("term_months", 36)
    kw.setdefault("money_factor", Decimal("0.002"))
    kw.setdefault("residual_value", Decimal("20000"))
    return LeaseTerms(**kw)


# ── Finance math ─────────────────────────────────────────────────────


def test_standard_payment():
    assert finance_payment(Decimal("20000"), Decimal("6"), 60) == Decimal("386.66")


def test_zero_rate_payment():
    assert finance_payment(Decimal("12000"), Decimal("0"), 60) == Decimal("200.00")


def test_zero_amount_payment():
    assert finance_payment(Decimal("0"), Decimal("6"), 60) == Decimal("0")


def test_total_interest():
    payment = finance_payment(Decimal("20000"), Decimal("6"), 60)
    assert total_interest(Decimal("20000"), payment, 60) == Decimal("3199.60")


def test_periods_for_term():
    assert periods_for_term(60) == 60
    assert periods_for_term(60, PaymentFrequency.BIWEEKLY) == 130
    assert periods_for_term(36, PaymentFrequency.WEEKLY) == 156


def test_solve_apr_recovers_rate():
    apr = solve_apr(Decimal("20000"), Decimal("386.66"), 60)
    assert float(apr) == pytest.approx(6.0, abs=0.01)


def test_solve_apr_zero_when_no_interest():
    assert solve_apr(Decimal("12000"), Decimal("200"), 60) == Decimal("0")


# ── Money factor ─────────────────────────────────────────────────────


def test_money_factor_to_apr():
    assert money_factor_to_apr(Decimal("0.00125")) == Decimal("3.00000")


def test_apr_to_money_factor():
    assert apr_to_money_factor(Decimal("3")) == Decimal("0.00125")


def test_money_factor_round_trip():
    for mf in ["0", "0.00001", "0.00125", "0.0025", "0.00417", "0.01"]:
        assert apr_to_money_factor(money_factor_to_apr(Decimal(mf))) == Decimal(mf)


def test_money_factor_round_trip_across_range():
    for i in range(0, 1001):
        mf = Decimal(i) / 100000
        assert apr_to_money_factor(money_factor_to_apr(mf)) == mf


# ── Amortization ─────────────────────────────────────────────────────


def test_schedule_principal_sums_to_amount():
    schedule = amortization_schedule(Decimal("20000"), Decimal("6"), 60)
    assert len(schedule) == 60
    assert schedule.total_principal == Decimal("20000")
    assert schedule.rows[-1].ending_balance == Decimal("0")
    assert schedule.rows[0].payment == Decimal("386.66")
    assert schedule.rows[0].interest == Decimal("100.00")


def test_schedule_final_payment_absorbs_cents():
    schedule = amortization_schedule(Decimal("20000"), Decimal("6"), 60)
    assert abs(schedule.rows[-1].payment - Decimal("386.66")) < Decimal("1.00")
    assert schedule.total_payments == schedule.total_principal + schedule.total_interest


def test_schedule_payment_dates_month_end():
    schedule = amortization_schedule(
        Decimal("5000"), Decimal("5"), 12, start_date=date(2024, 1, 31)
    )
    assert schedule.rows[0].payment_date == date(2024, 1, 31)
    assert schedule.rows[1].payment_date == date(2024, 2, 29)
    assert schedule.rows[2].payment_date == date(2024, 3, 31)


def test_schedule_biweekly_dates():
    schedule = amortization_schedule(
        Decimal("5000"),
        Decimal("5"),
        26,
        PaymentFrequency.BIWEEKLY,
        date(2024, 1, 1),
    )
    assert schedule.rows[1].payment_date == date(2024, 1, 15)


def test_schedule_dataframe():
    df = amortization_schedule(Decimal("5000"), Decimal("5"), 12).to_dataframe()
    assert len(df) == 12
    assert df["principal"].sum() == pytest.approx(5000.0)


def test_empty_schedule():
    assert len(amortization_schedule(Decimal("0"), Decimal("5"), 12)) == 0


# ── Cash and finance deals ───────────────────────────────────────────


def test_cash_totals(store: JurisdictionPolicyStore):
    price = _price(
        store,
        fees=[Fee("TITLE", Decimal("15"))],
        trade_in=TradeIn(Decimal("15000"), Decimal("4000")),
        cash_down=Decimal("5000"),
    )
    cash = cash_totals(price, Decimal("1140.00"))
    # 30,000 + 15 + 1,140 - 11,000 net trade
    assert cash.total_due == Decimal("20155.00")
    assert cash.balance_due == Decimal("15155.00")


def test_amount_financed(store: JurisdictionPolicyStore):
    price = _price(
        store,
        fees=[Fee("TITLE", Decimal("15"))],
        products=[
            FIProduct("GAP", Decimal("795")),
            FIProduct("ACCESSORY", Decimal("300"), finance_with_deal=False),
        ],
        trade_in=TradeIn(Decimal("15000"), Decimal("4000")),
        cash_down=Decimal("2000"),
    )
    # Cash-paid products stay out of the loan
    assert amount_financed(price, Decimal("1140.00")) == Decimal("18950.00")


def test_negative_equity_is_financed(store: JurisdictionPolicyStore):
    price = _price(store, trade_in=TradeIn(Decimal("8000"), Decimal("10000")))
    assert amount_financed(price, Decimal("0")) == Decimal("32000.00")


def test_calculate_finance(store: JurisdictionPolicyStore):
    price = _price(store, selling_price=Decimal("20000"))
    terms = FinanceTerms(Decimal("6"), 60, first_payment_date=date(2024, 9, 1))
    finance = calculate_finance(price, Decimal("0"), terms)
    assert finance.amount_financed == Decimal("20000.00")
    assert finance.payment == Decimal("386.66")
    assert finance.periods == 60
    assert finance.finance_charge == finance.total_of_payments - Decimal("20000.00")
    assert finance.schedule.rows[0].payment_date == date(2024, 9, 1)
    assert float(finance.disclosed_apr) == pytest.approx(6.0, abs=0.01)


def test_calculate_finance_without_schedule(store: JurisdictionPolicyStore):
    price = _price(store, selling_price=Decimal("20000"))
    finance = calculate_finance(
        price, Decimal("0"), FinanceTerms(Decimal("6"), 60), with_schedule=False
    )
    assert len(finance.schedule) == 0
    assert finance.total_of_payments == Decimal("23199.60")


# ── Lease structure ──────────────────────────────────────────────────


def test_lease_base_payment(store: JurisdictionPolicyStore):
    structure = structure_lease(_price(store, DealType.LEASE), _lease_terms())
    assert structure.adjusted_cap_cost == Decimal("30000.00")
    assert structure.depreciation == Decimal("277.78")
    assert structure.rent_charge == Decimal("100.00")
    assert structure.base_payment == Decimal("377.78")


def test_residual_from_percent():
    terms = _lease_terms(residual_value=None, residual_percent=Decimal("58"))
    assert residual_value(Decimal("35000"), terms) == Decimal("20300.00")


def test_cap_cost_includes_fees_products_and_acquisition(store: JurisdictionPolicyStore):
    price = _price(
        store,
        DealType.LEASE,
        fees=[
            Fee("DOC", Decimal("200")),
            Fee("REGISTRATION", Decimal("138"), capitalize_in_lease=False),
        ],
        products=[FIProduct("TIRE_WHEEL", Decimal("895"))],
    )
    structure = structure_lease(price, _lease_terms(acquisition_fee=Decimal("650")))
    assert structure.gross_cap_cost == Decimal("31745.00")


def test_cap_reduction(store: JurisdictionPolicyStore):
    price = _price(
        store,
        DealType.LEASE,
        trade_in=TradeIn(Decimal("8000"), Decimal("5000")),
        cash_down=Decimal("2000"),
    )
    structure = structure_lease(price, _lease_terms())
    assert structure.cap_cost_reduction == Decimal("5000.00")
    assert structure.adjusted_cap_cost == Decimal("25000.00")


def test_multiple_security_deposits(store: JurisdictionPolicyStore):
    terms = _lease_terms(msd_count=3)
    assert effective_money_factor(terms) == Decimal("0.00179")
    structure = structure_lease(_price(store, DealType.LEASE), terms)
    assert structure.rent_charge == Decimal("89.50")
    assert structure.base_payment == Decimal("367.28")
    # Base payment rounded up to $400, times three deposits
    assert structure.security_deposit == Decimal("1200")


# ── Lease payment ────────────────────────────────────────────────────


def test_due_at_signing(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    structure = structure_lease(price, _lease_terms())
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("22.67"))
    assert lease.total_monthly_payment == Decimal("400.45")
    assert lease.due_at_signing == Decimal("400.45")
    assert lease.total_of_payments == Decimal("14416.20")
    assert lease.total_lease_cost == Decimal("14416.20")
    assert lease.equivalent_apr == Decimal("4.800")


def test_due_at_signing_with_upfront_items(store: JurisdictionPolicyStore):
    price = _price(
        store,
        DealType.LEASE,
        cash_down=Decimal("2000"),
        fees=[Fee("REGISTRATION", Decimal("138"), capitalize_in_lease=False)],
    )
    terms = _lease_terms(
        acquisition_fee=Decimal("650"),
        acquisition_fee_capitalized=False,
        security_deposit=Decimal("400"),
        disposition_fee=Decimal("395"),
    )
    structure = structure_lease(price, terms)
    lease = calculate_lease(price, structure, Decimal("120.00"), Decimal("20.00"))
    total_monthly = structure.base_payment + Decimal("20.00")
    expected = (
        total_monthly
        + Decimal("400")
        + Decimal("650")
        + Decimal("2000")
        + Decimal("120.00")
        + Decimal("138")
    )
    assert lease.due_at_signing == expected
    assert lease.cash_due_at_signing == expected
    # Deposit is refundable and excluded from the cost of the lease
    assert lease.total_lease_cost == (
        total_monthly * 36
        + Decimal("650")
        + Decimal("2000")
        + Decimal("120.00")
        + Decimal("138")
        + Decimal("395")
    )


def test_due_at_signing_includes_trade_and_rebates(store: JurisdictionPolicyStore):
    price = _price(
        store,
        DealType.LEASE,
        trade_in=TradeIn(Decimal("5000")),
        rebates=[Rebate("Lease cash", Decimal("1000"))],
    )
    structure = structure_lease(price, _lease_terms())
    assert structure.cap_cost_reduction == Decimal("6000.00")
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("20.00"))
    assert lease.due_at_signing == lease.first_payment + Decimal("6000.00")
    assert lease.cash_due_at_signing == lease.first_payment


def test_negative_equity_not_collected_at_signing(store: JurisdictionPolicyStore):
    price = _price(
        store, DealType.LEASE, trade_in=TradeIn(Decimal("5000"), Decimal("7000"))
    )
    structure = structure_lease(price, _lease_terms())
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("20.00"))
    assert lease.due_at_signing == lease.first_payment
    assert lease.cash_due_at_signing == lease.first_payment


def test_one_pay_lease(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    structure = structure_lease(price, _lease_terms(one_pay=True))
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("22.67"))
    assert lease.one_pay is True
    assert lease.first_payment == Decimal("0")
    # 400.45 x 36 less 3%
    assert lease.total_of_payments == Decimal("13983.71")
    assert lease.due_at_signing == Decimal("13983.71")
    assert lease.cash_due_at_signing == Decimal("13983.71")


def test_one_pay_custom_discount(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    terms = _lease_terms(one_pay=True, one_pay_discount=Decimal("0"))
    lease = calculate_lease(
        price, structure_lease(price, terms), Decimal("0"), Decimal("22.67")
    )
    assert lease.total_of_payments == Decimal("14416.20")


def test_zero_term_lease_rejected(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    with pytest.raises(DealInputError, match="Lease term must be positive"):
        structure_lease(price, _lease_terms(term_months=0))


def test_sign_and_drive(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    structure = structure_lease(
        price, _lease_terms(sign_and_drive=True, security_deposit=Decimal("400"))
    )
    lease = calculate_lease(price, structure, Decimal("50.00"), Decimal("22.67"))
    assert lease.due_at_signing == Decimal("0")
    assert lease.first_payment == Decimal("0")


def test_cash_down_not_capitalized_offsets_drive_off(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE, cash_down=Decimal("1000"))
    structure = structure_lease(price, _lease_terms(cap_reduction_at_signing=False))
    assert structure.adjusted_cap_cost == Decimal("30000.00")
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("22.67"))
    assert lease.due_at_signing == Decimal("0")


def test_waived_disposition_fee(store: JurisdictionPolicyStore):
    price = _price(store, DealType.LEASE)
    structure = structure_lease(
        price,
        _lease_terms(disposition_fee=Decimal("395"), disposition_fee_waived=True),
    )
    lease = calculate_lease(price, structure, Decimal("0"), Decimal("0"))
    assert lease.disposition_fee == Decimal("0")
