"""
Deal validation.

Two kinds of problems are caught before any computation:

- Structural: a finance or lease deal without its terms. Raised as
  ``MissingTerms`` because nothing downstream can run.
- User-correctable: out-of-range prices, rates and terms. Collected as
  a list of messages so a form can show every problem at once.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from autotax.deal import DealInput, DealType
from autotax.exceptions import MissingTerms
from autotax.policies import DOC_FEE_CODE, JurisdictionPolicy

MAX_APR = Decimal("99.9")
FINANCE_TERM_RANGE = (12, 96)
LEASE_TERM_RANGE = (12, 60)
MAX_MONEY_FACTOR = Decimal("0.01")
RESIDUAL_PERCENT_RANGE = (Decimal("20"), Decimal("90"))


def check_structure(deal: DealInput) -> None:
    """Raise MissingTerms when a deal lacks the terms its type requires."""
    if deal.deal_type == DealType.FINANCE and deal.finance_terms is None:
        raise MissingTerms(deal.deal_type.value, "finance terms")
    if deal.deal_type == DealType.LEASE and deal.lease_terms is None:
        raise MissingTerms(deal.deal_type.value, "lease terms")


def validate_deal(
    deal: DealInput, policy: Optional[JurisdictionPolicy] = None
) -> list[str]:
    """Return every user-correctable problem with a deal (empty if valid)."""
    errors: list[str] = []

    if deal.selling_price <= 0:
        errors.append("Selling price must be greater than zero")
    if deal.msrp <= 0:
        errors.append("Vehicle MSRP must be greater than zero")
    if deal.cash_down < 0:
        errors.append("Cash down cannot be negative")

    if deal.trade_in is not None:
        if deal.trade_in.allowance < 0:
            errors.append("Trade-in allowance cannot be negative")
        if deal.trade_in.payoff < 0:
            errors.append("Trade-in payoff cannot be negative")
    for rebate in deal.rebates:
        if rebate.amount < 0:
            errors.append(f"Rebate '{rebate.name}' cannot be negative")
    for fee in deal.fees:
        if fee.amount < 0:
            errors.append(f"Fee '{fee.name}' cannot be negative")
    for product in deal.products:
        if product.price < 0:
            errors.append(f"Product '{product.name}' price cannot be negative")

    terms = deal.finance_terms
    if deal.deal_type == DealType.FINANCE and terms is not None:
        if not (0 <= terms.apr <= MAX_APR):
            errors.append("APR must be between 0 and 99.9%")
        low, high = FINANCE_TERM_RANGE
        if not (low <= terms.term_months <= high):
            errors.append("Finance term must be between 12 and 96 months")

    lease = deal.lease_terms
    if deal.deal_type == DealType.LEASE and lease is not None:
        if not (0 <= lease.money_factor <= MAX_MONEY_FACTOR):
            errors.append("Money factor must be between 0 and 0.01")
        if lease.residual_value is None:
            low, high = RESIDUAL_PERCENT_RANGE
            if lease.residual_percent is None:
                errors.append("Lease requires a residual value or residual percent")
            elif not (low <= lease.residual_percent <= high):
                errors.append("Residual percent must be between 20% and 90%")
        elif lease.residual_value <= 0:
            errors.append("Residual value must be greater than zero")
        low, high = LEASE_TERM_RANGE
        if not (low <= lease.term_months <= high):
            errors.append("Lease term must be between 12 and 60 months")
        if lease.msd_count < 0:
            errors.append("Security deposit count cannot be negative")
        if lease.one_pay:
            if lease.sign_and_drive:
                errors.append("A one-pay lease cannot also be sign-and-drive")
            if not (0 <= lease.one_pay_discount < 1):
                errors.append("One-pay discount must be at least 0 and below 1")

    if policy is not None and deal.selling_price > 0:
        cap = policy.doc_fee.cap_for(deal.selling_price)
        doc_total = sum(
            (f.amount for f in deal.fees if f.code == DOC_FEE_CODE), Decimal("0")
        )
        if cap is not None and doc_total > cap:
            errors.append(
                f"Doc fee ${doc_total:,.2f} exceeds the {policy.code} "
                f"cap of ${cap:,.2f}"
            )

    return errors
