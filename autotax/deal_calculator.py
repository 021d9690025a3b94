"""
Deal orchestration.

Runs one deal through every stage in order:
structure check -> validation -> price assembly -> tax (and
reciprocity) -> payment -> totals and gross profit.

Results are recomputed on every call and never cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from autotax.calculator import TaxBreakdown, TaxCalculator
from autotax.deal import DealInput, DealType
from autotax.local_rates import LocalRateTable
from autotax.money import ZERO, round_money
from autotax.payments import (
    CashPayment,
    FinancePayment,
    LeasePayment,
    calculate_finance,
    calculate_lease,
    cash_totals,
)
from autotax.policies import JurisdictionPolicyStore
from autotax.pricing import PriceBreakdown, assemble_price
from autotax.reciprocity import ReciprocityOutcome, ReciprocityResolver
from autotax.settings import EngineSettings
from autotax.validation import check_structure, validate_deal

logger = logging.getLogger(__name__)

DEFAULT_INVOICE_RATIO = Decimal("0.92")


@dataclass(frozen=True)
class ProfitAnalysis:
    front_end_gross: Decimal = ZERO
    back_end_gross: Decimal = ZERO

    @property
    def total_gross(self) -> Decimal:
        return self.front_end_gross + self.back_end_gross


@dataclass(frozen=True)
class DealTotals:
    amount_financed: Decimal = ZERO
    total_sale_price: Decimal = ZERO
    total_due: Decimal = ZERO  # collected at delivery / signing
    balance_due: Decimal = ZERO
    finance_charge: Decimal = ZERO
    total_of_payments: Decimal = ZERO


@dataclass(frozen=True)
class DealResult:
    deal_id: str
    deal_type: DealType
    jurisdiction_code: str
    is_valid: bool
    validation_errors: tuple[str, ...] = ()
    policy_dataset: str = ""
    price: Optional[PriceBreakdown] = None
    tax: Optional[TaxBreakdown] = None
    cash: Optional[CashPayment] = None
    finance: Optional[FinancePayment] = None
    lease: Optional[LeasePayment] = None
    reciprocity: Optional[ReciprocityOutcome] = None
    profit: ProfitAnalysis = field(default_factory=ProfitAnalysis)
    totals: DealTotals = field(default_factory=DealTotals)

    @property
    def total_tax(self) -> Decimal:
        return self.tax.total_tax if self.tax else ZERO

    @property
    def monthly_payment(self) -> Decimal:
        if self.finance is not None:
            return self.finance.payment
        if self.lease is not None:
            return self.lease.total_monthly_payment
        return ZERO

    @classmethod
    def invalid(cls, deal: DealInput, errors: list[str]) -> "DealResult":
        return cls(
            deal_id=deal.deal_id,
            deal_type=deal.deal_type,
            jurisdiction_code=deal.jurisdiction_code,
            is_valid=False,
            validation_errors=tuple(errors),
        )


def profit_analysis(deal: DealInput, breakdown: PriceBreakdown) -> ProfitAnalysis:
    """Front-end gross on the vehicle, back-end gross on products."""
    invoice = (
        deal.invoice
        if deal.invoice is not None
        else round_money(deal.msrp * DEFAULT_INVOICE_RATIO)
    )
    return ProfitAnalysis(
        front_end_gross=deal.selling_price - invoice,
        back_end_gross=breakdown.total_products - breakdown.product_cost,
    )


class DealCalculator:
    """
    Prices complete deals against one policy store and local rate table.

    Usage:
        calc = DealCalculator(store, local_rates)
        result = calc.compute(deal)
    """

    def __init__(
        self,
        store: Optional[JurisdictionPolicyStore] = None,
        local_rates: Optional[LocalRateTable] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.store = store or JurisdictionPolicyStore.from_yaml(
            self.settings.policy_path
        )
        self.local_rates = local_rates or LocalRateTable.from_csv(
            self.settings.local_rates_path
        )
        self.tax_calculator = TaxCalculator(self.store, self.local_rates)
        self.reciprocity = ReciprocityResolver(self.tax_calculator)

    def compute(self, deal: DealInput) -> DealResult:
        """
        Price a deal end to end.

        Structural problems (missing terms, unknown jurisdiction) raise.
        Validation problems come back as an invalid, zeroed result.
        """
        check_structure(deal)
        snapshot = self.store.snapshot
        policy = snapshot.get(deal.jurisdiction_code, deal.as_of)
        if deal.is_out_of_state:
            snapshot.get(deal.registration_state, deal.as_of)

        errors = validate_deal(deal, policy)
        if errors:
            logger.info(
                "Deal %s rejected with %d validation error(s)",
                deal.deal_id or "<unnamed>",
                len(errors),
            )
            return DealResult.invalid(deal, errors)

        breakdown = assemble_price(deal, policy)
        tax = self.tax_calculator.calculate(
            breakdown,
            deal.jurisdiction_code,
            deal.postal_code or self.settings.default_postal_code,
            deal.deal_type,
            deal.lease_terms,
            deal.as_of,
            snapshot=snapshot,
        )

        reciprocity = None
        if deal.is_out_of_state:
            reciprocity = self.reciprocity.resolve(deal, tax, snapshot)

        cash = finance = lease = None
        if deal.deal_type == DealType.CASH:
            cash = cash_totals(breakdown, tax.total_tax)
            totals = DealTotals(
                total_sale_price=cash.total_due,
                total_due=cash.total_due,
                balance_due=cash.balance_due,
            )
        elif deal.deal_type == DealType.FINANCE:
            finance = calculate_finance(breakdown, tax.total_tax, deal.finance_terms)
            totals = DealTotals(
                amount_financed=finance.amount_financed,
                total_sale_price=(
                    finance.total_of_payments
                    + breakdown.cash_down
                    + breakdown.trade_equity
                    + breakdown.cash_products
                ),
                total_due=breakdown.cash_down + breakdown.cash_products,
                balance_due=finance.amount_financed,
                finance_charge=finance.finance_charge,
                total_of_payments=finance.total_of_payments,
            )
        else:
            detail = tax.lease
            lease = calculate_lease(
                breakdown, detail.structure, detail.upfront_tax, detail.monthly_tax
            )
            structure = lease.structure
            totals = DealTotals(
                amount_financed=structure.adjusted_cap_cost,
                total_sale_price=lease.total_lease_cost,
                total_due=lease.due_at_signing,
                balance_due=(
                    ZERO
                    if lease.one_pay
                    else lease.total_of_payments - lease.first_payment
                ),
                finance_charge=round_money(
                    structure.rent_charge * structure.term_months
                ),
                total_of_payments=lease.total_of_payments,
            )

        result = DealResult(
            deal_id=deal.deal_id,
            deal_type=deal.deal_type,
            jurisdiction_code=deal.jurisdiction_code,
            is_valid=True,
            policy_dataset=snapshot.label,
            price=breakdown,
            tax=tax,
            cash=cash,
            finance=finance,
            lease=lease,
            reciprocity=reciprocity,
            profit=profit_analysis(deal, breakdown),
            totals=totals,
        )
        logger.debug(
            "Deal %s priced: tax %s, payment %s",
            deal.deal_id or "<unnamed>",
            result.total_tax,
            result.monthly_payment,
        )
        return result


def compute_deal(
    deal: DealInput, calculator: Optional[DealCalculator] = None
) -> DealResult:
    """Price a deal with the given calculator or one over the configured data."""
    calculator = calculator or DealCalculator()
    return calculator.compute(deal)
