"""
Payment calculator.

Turns a priced deal plus its computed tax into what the customer pays:

- Cash:     total due and balance after cash down
- Finance:  amount financed, level payment, amortization schedule,
            finance charge and the disclosed APR
- Lease:    cap cost structure, base and total monthly payment,
            due at signing and total lease cost

Money factor conversions (APR ~= MF x 2400) live here as well.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import pandas as pd

from autotax.deal import FinanceTerms, LeaseTerms, PaymentFrequency
from autotax.exceptions import DealInputError
from autotax.money import HUNDRED, ZERO, clamp_floor, round_money, round_rate
from autotax.pricing import PriceBreakdown

logger = logging.getLogger(__name__)

MONEY_FACTOR_APR_MULTIPLIER = Decimal("2400")
MSD_ROUNDING = Decimal("50")


# ---------------------------------------------------------------------------
# Core finance math
# ---------------------------------------------------------------------------


def periods_for_term(
    term_months: int, frequency: PaymentFrequency = PaymentFrequency.MONTHLY
) -> int:
    """Number of payments over a term at a given frequency."""
    periods = Decimal(term_months) * frequency.periods_per_year / 12
    return int(periods.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _exact_payment(
    amount: Decimal, apr: Decimal, periods: int, periods_per_year: int
) -> Decimal:
    rate = apr / HUNDRED / periods_per_year
    if rate == 0:
        return amount / periods
    factor = (1 + rate) ** periods
    return amount * rate * factor / (factor - 1)


def finance_payment(
    amount: Decimal,
    apr: Decimal,
    periods: int,
    periods_per_year: int = 12,
) -> Decimal:
    """
    Level payment for an installment loan.

    P = A * r * (1 + r)^n / ((1 + r)^n - 1) with r = APR / periods / 100.
    A zero rate degrades to A / n.
    """
    if amount <= 0 or periods <= 0:
        return ZERO
    return round_money(_exact_payment(amount, apr, periods, periods_per_year))


def total_interest(amount: Decimal, payment: Decimal, periods: int) -> Decimal:
    return clamp_floor(round_money(payment * periods - amount))


def solve_apr(
    amount: Decimal,
    payment: Decimal,
    periods: int,
    periods_per_year: int = 12,
    tolerance: Decimal = Decimal("0.000001"),
) -> Decimal:
    """
    Annual rate (percent) that reproduces a payment, by bisection.

    Used to disclose the APR actually implied by a rounded payment.
    Returns zero when the payments do not exceed the amount.
    """
    if amount <= 0 or payment <= 0 or periods <= 0:
        return ZERO
    if payment * periods <= amount:
        return ZERO

    low, high = ZERO, HUNDRED
    for _ in range(200):
        mid = (low + high) / 2
        if _exact_payment(amount, mid, periods, periods_per_year) > payment:
            high = mid
        else:
            low = mid
        if high - low < tolerance:
            break
    return round_rate((low + high) / 2, 3)


def money_factor_to_apr(money_factor: Decimal) -> Decimal:
    """APR in percent equivalent to a lease money factor."""
    return Decimal(str(money_factor)) * MONEY_FACTOR_APR_MULTIPLIER


def apr_to_money_factor(apr: Decimal) -> Decimal:
    """Money factor equivalent to an APR in percent."""
    return Decimal(str(apr)) / MONEY_FACTOR_APR_MULTIPLIER


convert_money_factor_to_apr = money_factor_to_apr
convert_apr_to_money_factor = apr_to_money_factor


# ---------------------------------------------------------------------------
# Amortization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AmortizationRow:
    number: int
    payment_date: Optional[date]
    beginning_balance: Decimal
    payment: Decimal
    principal: Decimal
    interest: Decimal
    ending_balance: Decimal
    cumulative_interest: Decimal
    cumulative_principal: Decimal


@dataclass(frozen=True)
class AmortizationSchedule:
    rows: tuple[AmortizationRow, ...]

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def total_payments(self) -> Decimal:
        return sum((r.payment for r in self.rows), ZERO)

    @property
    def total_principal(self) -> Decimal:
        return sum((r.principal for r in self.rows), ZERO)

    @property
    def total_interest(self) -> Decimal:
        return sum((r.interest for r in self.rows), ZERO)

    @property
    def average_payment(self) -> Decimal:
        if not self.rows:
            return ZERO
        return round_money(self.total_payments / len(self.rows))

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "number": r.number,
                    "payment_date": r.payment_date,
                    "beginning_balance": float(r.beginning_balance),
                    "payment": float(r.payment),
                    "principal": float(r.principal),
                    "interest": float(r.interest),
                    "ending_balance": float(r.ending_balance),
                    "cumulative_interest": float(r.cumulative_interest),
                    "cumulative_principal": float(r.cumulative_principal),
                }
                for r in self.rows
            ]
        )


def _payment_dates(
    start: Optional[date], count: int, frequency: PaymentFrequency
) -> list[Optional[date]]:
    if start is None:
        return [None] * count
    if frequency == PaymentFrequency.MONTHLY:
        offsets = [pd.DateOffset(months=i) for i in range(count)]
    else:
        step = 2 if frequency == PaymentFrequency.BIWEEKLY else 1
        offsets = [pd.DateOffset(weeks=i * step) for i in range(count)]
    base = pd.Timestamp(start)
    return [(base + off).date() for off in offsets]


def amortization_schedule(
    amount: Decimal,
    apr: Decimal,
    periods: int,
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
    start_date: Optional[date] = None,
) -> AmortizationSchedule:
    """
    Period-by-period schedule for a level-payment loan.

    Interest is rounded each period; the final payment absorbs any
    residual cents so principal sums exactly to the amount financed.
    """
    if amount <= 0 or periods <= 0:
        return AmortizationSchedule(rows=())

    ppy = frequency.periods_per_year
    payment = finance_payment(amount, apr, periods, ppy)
    rate = apr / HUNDRED / ppy
    dates = _payment_dates(start_date, periods, frequency)

    rows: list[AmortizationRow] = []
    balance = amount
    cum_interest = ZERO
    cum_principal = ZERO
    for number in range(1, periods + 1):
        beginning = balance
        interest = round_money(beginning * rate)
        if number == periods:
            principal = beginning
            this_payment = principal + interest
        else:
            principal = min(payment - interest, beginning)
            this_payment = principal + interest
        balance = beginning - principal
        cum_interest += interest
        cum_principal += principal
        rows.append(
            AmortizationRow(
                number=number,
                payment_date=dates[number - 1],
                beginning_balance=beginning,
                payment=this_payment,
                principal=principal,
                interest=interest,
                ending_balance=balance,
                cumulative_interest=cum_interest,
                cumulative_principal=cum_principal,
            )
        )
    return AmortizationSchedule(rows=tuple(rows))


# ---------------------------------------------------------------------------
# Cash and finance deals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashPayment:
    total_due: Decimal
    balance_due: Decimal


def cash_totals(breakdown: PriceBreakdown, total_tax: Decimal) -> CashPayment:
    total_due = round_money(
        breakdown.selling_price
        - breakdown.total_rebates
        + breakdown.total_fees
        + breakdown.total_products
        + total_tax
        - breakdown.net_trade
    )
    return CashPayment(
        total_due=total_due,
        balance_due=total_due - breakdown.cash_down,
    )


def amount_financed(breakdown: PriceBreakdown, total_tax: Decimal) -> Decimal:
    return clamp_floor(
        round_money(
            breakdown.selling_price
            - breakdown.total_rebates
            - breakdown.cash_down
            - breakdown.net_trade
            + total_tax
            + breakdown.total_fees
            + breakdown.financed_products
        )
    )


@dataclass(frozen=True)
class FinancePayment:
    amount_financed: Decimal
    apr: Decimal
    term_months: int
    frequency: PaymentFrequency
    periods: int
    payment: Decimal
    total_of_payments: Decimal
    finance_charge: Decimal
    disclosed_apr: Decimal
    schedule: AmortizationSchedule

    @property
    def total_interest(self) -> Decimal:
        return self.finance_charge


def calculate_finance(
    breakdown: PriceBreakdown,
    total_tax: Decimal,
    terms: FinanceTerms,
    with_schedule: bool = True,
) -> FinancePayment:
    financed = amount_financed(breakdown, total_tax)
    periods = periods_for_term(terms.term_months, terms.payment_frequency)
    ppy = terms.payment_frequency.periods_per_year
    payment = finance_payment(financed, terms.apr, periods, ppy)

    if with_schedule:
        schedule = amortization_schedule(
            financed,
            terms.apr,
            periods,
            terms.payment_frequency,
            terms.first_payment_date,
        )
        total_of_payments = schedule.total_payments
    else:
        schedule = AmortizationSchedule(rows=())
        total_of_payments = round_money(payment * periods)

    logger.debug(
        "Financed %s at %s%% over %d periods: payment %s",
        financed,
        terms.apr,
        periods,
        payment,
    )
    return FinancePayment(
        amount_financed=financed,
        apr=terms.apr,
        term_months=terms.term_months,
        frequency=terms.payment_frequency,
        periods=periods,
        payment=payment,
        total_of_payments=total_of_payments,
        finance_charge=clamp_floor(total_of_payments - financed),
        disclosed_apr=solve_apr(financed, payment, periods, ppy),
        schedule=schedule,
    )


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LeaseStructure:
    """Cap cost, residual and pre-tax payment for a lease."""

    term_months: int
    residual_value: Decimal
    gross_cap_cost: Decimal
    cap_cost_reduction: Decimal
    cash_reduction: Decimal  # cash down applied to the cap cost
    adjusted_cap_cost: Decimal
    money_factor: Decimal  # after any multiple security deposit reduction
    depreciation: Decimal
    rent_charge: Decimal
    base_payment: Decimal
    security_deposit: Decimal
    acquisition_fee: Decimal
    acquisition_fee_capitalized: bool
    terms: LeaseTerms = field(repr=False)


def residual_value(msrp: Decimal, terms: LeaseTerms) -> Decimal:
    if terms.residual_value is not None:
        return terms.residual_value
    return round_money(msrp * (terms.residual_percent or ZERO) / HUNDRED)


def effective_money_factor(terms: LeaseTerms) -> Decimal:
    if terms.msd_count <= 0:
        return terms.money_factor
    return clamp_floor(terms.money_factor - terms.msd_rate_reduction * terms.msd_count)


def structure_lease(breakdown: PriceBreakdown, terms: LeaseTerms) -> LeaseStructure:
    """Build the cap cost structure and base payment for a lease."""
    if terms.term_months <= 0:
        raise DealInputError(
            f"Lease term must be positive, got {terms.term_months}",
            details={"term_months": terms.term_months},
        )
    residual = residual_value(breakdown.msrp, terms)
    acquisition_in_cap = (
        terms.acquisition_fee if terms.acquisition_fee_capitalized else ZERO
    )
    gross = (
        breakdown.selling_price
        + breakdown.capitalized_fees
        + breakdown.financed_products
        + acquisition_in_cap
    )
    cash_reduction = breakdown.cash_down if terms.cap_reduction_at_signing else ZERO
    reduction = breakdown.net_trade + breakdown.total_rebates + cash_reduction
    adjusted = clamp_floor(gross - reduction)

    mf = effective_money_factor(terms)
    depreciation = (adjusted - residual) / terms.term_months
    rent = (adjusted + residual) * mf
    base_payment = clamp_floor(round_money(depreciation + rent))

    if terms.security_deposit_waived:
        deposit = ZERO
    elif terms.msd_count > 0:
        rounded = Decimal(math.ceil(base_payment / MSD_ROUNDING)) * MSD_ROUNDING
        deposit = rounded * terms.msd_count
    else:
        deposit = terms.security_deposit

    return LeaseStructure(
        term_months=terms.term_months,
        residual_value=residual,
        gross_cap_cost=round_money(gross),
        cap_cost_reduction=round_money(reduction),
        cash_reduction=cash_reduction,
        adjusted_cap_cost=round_money(adjusted),
        money_factor=mf,
        depreciation=round_money(depreciation),
        rent_charge=round_money(rent),
        base_payment=base_payment,
        security_deposit=deposit,
        acquisition_fee=terms.acquisition_fee,
        acquisition_fee_capitalized=terms.acquisition_fee_capitalized,
        terms=terms,
    )


@dataclass(frozen=True)
class LeasePayment:
    structure: LeaseStructure
    monthly_tax: Decimal
    upfront_tax: Decimal
    total_monthly_payment: Decimal
    first_payment: Decimal  # collected at signing, zero if not due then
    due_at_signing: Decimal
    cash_due_at_signing: Decimal  # due at signing less trade equity and rebates
    total_of_payments: Decimal
    disposition_fee: Decimal
    total_lease_cost: Decimal
    equivalent_apr: Decimal
    one_pay: bool = False


def calculate_lease(
    breakdown: PriceBreakdown,
    structure: LeaseStructure,
    upfront_tax: Decimal,
    monthly_tax: Decimal,
) -> LeasePayment:
    """
    Combine a lease structure with its tax into the customer's payments.

    Due at signing carries the whole cap cost reduction (cash, trade
    equity and rebates); ``cash_due_at_signing`` counts only the cash.
    A one-pay lease prepays every payment at signing, less
    ``one_pay_discount``.
    """
    terms = structure.terms
    total_monthly = structure.base_payment + monthly_tax
    if terms.one_pay:
        total_of_payments = round_money(
            total_monthly * structure.term_months * (1 - terms.one_pay_discount)
        )
        first_payment = ZERO
        prepaid = total_of_payments
    else:
        total_of_payments = total_monthly * structure.term_months
        first_payment = total_monthly if terms.first_payment_at_signing else ZERO
        prepaid = first_payment
    uncapitalized_acquisition = (
        ZERO if structure.acquisition_fee_capitalized else structure.acquisition_fee
    )

    if terms.sign_and_drive:
        first_payment = ZERO
        deposit = ZERO
        upfront_charges = ZERO
        cash_reduction = ZERO
        due_at_signing = ZERO
        cash_due = ZERO
    else:
        deposit = structure.security_deposit
        cash_reduction = structure.cash_reduction
        upfront_charges = (
            uncapitalized_acquisition
            + upfront_tax
            + breakdown.uncapitalized_fees
            + breakdown.cash_products
        )
        # Negative equity raises the cap cost but is not collected at signing
        reduction_at_signing = (
            cash_reduction + breakdown.trade_equity + breakdown.total_rebates
        )
        due_at_signing = prepaid + deposit + upfront_charges + reduction_at_signing
        cash_due = prepaid + deposit + upfront_charges + cash_reduction
        if not terms.cap_reduction_at_signing:
            due_at_signing -= breakdown.cash_down
            cash_due -= breakdown.cash_down
        due_at_signing = clamp_floor(due_at_signing)
        cash_due = clamp_floor(cash_due)

    disposition = ZERO if terms.disposition_fee_waived else terms.disposition_fee
    # Payments count once through total_of_payments; deposit is refundable.
    total_lease_cost = (
        total_of_payments + upfront_charges + cash_reduction + disposition
    )

    return LeasePayment(
        structure=structure,
        monthly_tax=monthly_tax,
        upfront_tax=upfront_tax,
        total_monthly_payment=total_monthly,
        first_payment=first_payment,
        due_at_signing=round_money(due_at_signing),
        cash_due_at_signing=round_money(cash_due),
        total_of_payments=round_money(total_of_payments),
        disposition_fee=disposition,
        total_lease_cost=round_money(total_lease_cost),
        equivalent_apr=round_rate(money_factor_to_apr(structure.money_factor), 3),
        one_pay=terms.one_pay,
    )
