"""
Vehicle transaction tax computation engine.

Handles:
- Trade-in credit per the jurisdiction's policy (full, capped, partial, none)
- Rebate, fee and F&I product taxability
- State-only and state-plus-local rate schemes
- Lease taxation by method (monthly, full upfront, hybrid, net cap cost,
  reduced base)
- One-time title taxes (title ad valorem, highway use, privilege) in
  place of sales tax
- Vehicle / fee / product tax components reconciled to the total
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from autotax.deal import DealType, LeaseTerms
from autotax.exceptions import MissingTerms
from autotax.local_rates import LocalRateResolution, LocalRateTable, RateSource
from autotax.money import CENT, ZERO, clamp_floor, round_money
from autotax.payments import LeaseStructure, structure_lease
from autotax.policies import (
    ACQUISITION_FEE_CODE,
    JurisdictionPolicy,
    JurisdictionPolicyStore,
    LeaseRebateBehavior,
    LeaseTaxMethod,
    LeaseTradeInCredit,
    PolicySnapshot,
    TitleTaxLeaseBase,
    TitleTaxRules,
    VehicleTaxScheme,
)
from autotax.pricing import PriceBreakdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseTaxDetail:
    """How a lease was taxed: what is due at signing and per payment."""

    method: LeaseTaxMethod
    taxable_cap_reduction: Decimal
    upfront_base: Decimal
    monthly_base: Decimal
    upfront_tax: Decimal
    monthly_tax: Decimal
    term_months: int
    structure: LeaseStructure

    @property
    def total_tax(self) -> Decimal:
        return self.upfront_tax + self.monthly_tax * self.term_months


@dataclass(frozen=True)
class TaxBreakdown:
    """Result of a tax computation for one deal in one jurisdiction."""

    jurisdiction_code: str
    deal_type: DealType
    policy_version: int
    state_rate: Decimal
    local_rate: Decimal
    local_rate_source: RateSource
    trade_credit: Decimal
    vehicle_base: Decimal
    fees_base: Decimal
    products_base: Decimal
    taxable_base: Decimal
    vehicle_tax: Decimal
    fees_tax: Decimal
    products_tax: Decimal
    state_tax: Decimal
    local_tax: Decimal
    total_tax: Decimal
    rounding_difference: Decimal = ZERO
    lease: Optional[LeaseTaxDetail] = None
    local_resolution: Optional[LocalRateResolution] = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def combined_rate(self) -> Decimal:
        return self.state_rate + self.local_rate

    @property
    def effective_rate(self) -> float:
        if self.taxable_base <= 0:
            return 0.0
        return float(self.total_tax / self.taxable_base)


def combined_rate(
    policy: JurisdictionPolicy, resolution: Optional[LocalRateResolution]
) -> Decimal:
    """State rate plus local only under a state-plus-local scheme."""
    if policy.vehicle_tax_scheme != VehicleTaxScheme.STATE_PLUS_LOCAL:
        return policy.state_rate
    return policy.state_rate + (resolution.rate if resolution else ZERO)


def _reconcile(
    total: Decimal, rate: Decimal, vehicle: Decimal, fees: Decimal, products: Decimal
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    Round each component independently and tie them back to the total.

    The vehicle component absorbs any drift larger than a cent.
    Returns (vehicle_tax, fees_tax, products_tax, rounding_difference).
    """
    vehicle_tax = round_money(vehicle * rate)
    fees_tax = round_money(fees * rate)
    products_tax = round_money(products * rate)
    drift = total - (vehicle_tax + fees_tax + products_tax)
    if abs(drift) > CENT:
        vehicle_tax += drift
    return (
        vehicle_tax,
        fees_tax,
        products_tax,
        total - (vehicle_tax + fees_tax + products_tax),
    )


class TaxCalculator:
    """
    Vehicle tax engine.

    Takes one policy snapshot per computation from the store, so a
    reload in the middle of a run cannot mix two datasets.
    """

    def __init__(
        self,
        store: Optional[JurisdictionPolicyStore] = None,
        local_rates: Optional[LocalRateTable] = None,
    ) -> None:
        self.store = store or JurisdictionPolicyStore.bundled()
        self.local_rates = local_rates or LocalRateTable.bundled()

    def resolve_local_rate(
        self,
        policy: JurisdictionPolicy,
        postal_code: Optional[str],
        as_of: Optional[date] = None,
    ) -> LocalRateResolution:
        if policy.vehicle_tax_scheme != VehicleTaxScheme.STATE_PLUS_LOCAL:
            return LocalRateResolution(rate=ZERO, source=RateSource.NONE)
        return self.local_rates.resolve(postal_code, policy, as_of)

    def calculate(
        self,
        breakdown: PriceBreakdown,
        jurisdiction_code: str,
        postal_code: Optional[str] = None,
        deal_type: DealType = DealType.CASH,
        lease_terms: Optional[LeaseTerms] = None,
        as_of: Optional[date] = None,
        snapshot: Optional[PolicySnapshot] = None,
    ) -> TaxBreakdown:
        """
        Compute tax for a priced deal in a jurisdiction.

        Raises UnknownJurisdiction for codes without an active policy and
        MissingTerms for a lease without lease terms.
        """
        snapshot = snapshot or self.store.snapshot
        policy = snapshot.get(jurisdiction_code, as_of)
        structure = None
        if deal_type == DealType.LEASE:
            if lease_terms is None:
                raise MissingTerms(deal_type.value, "lease terms")
            structure = structure_lease(breakdown, lease_terms)
        return self.calculate_for_policy(
            breakdown, policy, postal_code, deal_type, structure, as_of
        )

    def calculate_for_policy(
        self,
        breakdown: PriceBreakdown,
        policy: JurisdictionPolicy,
        postal_code: Optional[str] = None,
        deal_type: DealType = DealType.CASH,
        structure: Optional[LeaseStructure] = None,
        as_of: Optional[date] = None,
    ) -> TaxBreakdown:
        resolution = self.resolve_local_rate(policy, postal_code, as_of)
        if deal_type == DealType.LEASE and structure is None:
            raise MissingTerms(deal_type.value, "lease terms")
        if policy.vehicle_tax_scheme.is_title_tax:
            return self._title_tax(breakdown, policy, resolution, deal_type, structure)
        if deal_type == DealType.LEASE:
            return self._lease_tax(breakdown, policy, resolution, structure)
        return self._retail_tax(breakdown, policy, resolution, deal_type)

    # ------------------------------------------------------------------
    # Retail (cash and finance)
    # ------------------------------------------------------------------

    def _retail_tax(
        self,
        breakdown: PriceBreakdown,
        policy: JurisdictionPolicy,
        resolution: LocalRateResolution,
        deal_type: DealType,
    ) -> TaxBreakdown:
        notes: list[str] = list(resolution.notes)

        credit = policy.trade_in.credit(
            breakdown.trade_allowance, breakdown.selling_price
        )
        if breakdown.trade_allowance > 0:
            notes.append(
                f"Trade-in credit {policy.trade_in.describe()}: ${credit:,.2f}"
            )

        vehicle_base = clamp_floor(
            breakdown.selling_price - credit - breakdown.non_taxable_rebates
        )
        if policy.tax_on_negative_equity and breakdown.negative_equity > 0:
            vehicle_base += breakdown.negative_equity
            notes.append(
                f"Negative equity ${breakdown.negative_equity:,.2f} is taxable"
            )
        if breakdown.taxable_rebates > 0:
            notes.append(
                f"Taxable rebates ${breakdown.taxable_rebates:,.2f} "
                "do not reduce the base"
            )

        fees_base = breakdown.taxable_fees
        products_base = breakdown.taxable_products
        return self._build(
            policy,
            resolution,
            deal_type,
            credit,
            vehicle_base,
            fees_base,
            products_base,
            notes,
        )

    # ------------------------------------------------------------------
    # Lease
    # ------------------------------------------------------------------

    def _taxable_cap_reduction(
        self,
        breakdown: PriceBreakdown,
        policy: JurisdictionPolicy,
        structure: LeaseStructure,
    ) -> Decimal:
        """Portion of the cap cost reduction taxed as a notional first payment."""
        rules = policy.lease
        amount = ZERO
        if rules.tax_cap_reduction:
            amount += structure.cash_reduction
        if rules.tax_cap_reduction or rules.trade_in_credit == LeaseTradeInCredit.NONE:
            amount += breakdown.trade_equity

        if rules.rebate_behavior == LeaseRebateBehavior.ALWAYS_TAXABLE:
            amount += breakdown.total_rebates
        elif rules.rebate_behavior == LeaseRebateBehavior.FOLLOW_RETAIL_RULE:
            amount += breakdown.taxable_rebates
        return amount

    def _lease_tax(
        self,
        breakdown: PriceBreakdown,
        policy: JurisdictionPolicy,
        resolution: LocalRateResolution,
        structure: LeaseStructure,
    ) -> TaxBreakdown:
        rules = policy.lease
        rate = combined_rate(policy, resolution)
        notes: list[str] = list(resolution.notes)
        notes.append(f"Lease taxed using the {rules.method.value} method")

        acquisition_taxable = policy.is_fee_taxable(ACQUISITION_FEE_CODE, lease=True)
        acquisition = structure.acquisition_fee if acquisition_taxable else ZERO
        taxable_fees = breakdown.taxable_fees + acquisition
        uncapitalized_taxable = breakdown.uncapitalized_taxable_fees + (
            ZERO if structure.acquisition_fee_capitalized else acquisition
        )
        upfront_fees = taxable_fees if rules.tax_fees_upfront else uncapitalized_taxable

        cap_reduction = self._taxable_cap_reduction(breakdown, policy, structure)
        products = breakdown.taxable_products
        term = structure.term_months

        if rules.trade_in_credit == LeaseTradeInCredit.NONE:
            credit = ZERO
        else:
            credit = policy.trade_in.credit(
                breakdown.trade_allowance, breakdown.selling_price
            )

        monthly_base = ZERO
        fees_part = ZERO
        products_part = ZERO
        if rules.method == LeaseTaxMethod.MONTHLY:
            upfront_base = cap_reduction + upfront_fees
            monthly_base = structure.base_payment
            fees_part = upfront_fees
        elif rules.method == LeaseTaxMethod.FULL_UPFRONT:
            vehicle = clamp_floor(
                breakdown.selling_price - credit - breakdown.non_taxable_rebates
            )
            if rules.negative_equity_taxable:
                vehicle += breakdown.negative_equity
            upfront_base = vehicle + taxable_fees + products
            fees_part = taxable_fees
            products_part = products
        elif rules.method == LeaseTaxMethod.HYBRID:
            upfront_base = cap_reduction + upfront_fees + products
            monthly_base = structure.base_payment
            fees_part = upfront_fees
            products_part = products
        elif rules.method == LeaseTaxMethod.NET_CAP_COST:
            adjusted = structure.adjusted_cap_cost
            if not rules.negative_equity_taxable:
                adjusted = clamp_floor(adjusted - breakdown.negative_equity)
            upfront_base = adjusted + cap_reduction + uncapitalized_taxable
            fees_part = uncapitalized_taxable
        else:
            upfront_base = (
                structure.base_payment * term + cap_reduction + uncapitalized_taxable
            )
            fees_part = uncapitalized_taxable

        upfront_base = clamp_floor(upfront_base)
        upfront_tax = round_money(upfront_base * rate)
        monthly_tax = round_money(monthly_base * rate)
        detail = LeaseTaxDetail(
            method=rules.method,
            taxable_cap_reduction=cap_reduction,
            upfront_base=upfront_base,
            monthly_base=monthly_base,
            upfront_tax=upfront_tax,
            monthly_tax=monthly_tax,
            term_months=term,
            structure=structure,
        )
        logger.debug(
            "%s lease tax: upfront %s on %s, monthly %s on %s",
            policy.code,
            upfront_tax,
            upfront_base,
            monthly_tax,
            monthly_base,
        )

        vehicle_part = clamp_floor(
            upfront_base + monthly_base * term - fees_part - products_part
        )
        return self._build(
            policy,
            resolution,
            DealType.LEASE,
            credit,
            vehicle_part,
            fees_part,
            products_part,
            notes,
            total_tax=detail.total_tax,
            lease=detail,
        )

    # ------------------------------------------------------------------
    # Title taxes
    # ------------------------------------------------------------------

    def _title_tax(
        self,
        breakdown: PriceBreakdown,
        policy: JurisdictionPolicy,
        resolution: LocalRateResolution,
        deal_type: DealType,
        structure: Optional[LeaseStructure] = None,
    ) -> TaxBreakdown:
        """
        One-time tax collected when the vehicle is titled.

        Leases pay it upfront on the gross cap cost or the agreed value.
        There is no local component and no monthly lease tax.
        """
        rules = policy.title_tax or TitleTaxRules()
        rate = rules.rate_for(policy.state_rate, breakdown.vehicle_class)
        notes = [
            f"{policy.name} collects a one-time "
            f"{policy.vehicle_tax_scheme.value} title tax at {rate:.2%}"
        ]
        if rate != policy.state_rate:
            notes.append(f"Vehicle class {breakdown.vehicle_class} rate applies")

        price = breakdown.selling_price
        if (
            structure is not None
            and rules.lease_base == TitleTaxLeaseBase.GROSS_CAP_COST
        ):
            # Capitalized fees and products are added back below by taxability
            price = clamp_floor(
                structure.gross_cap_cost
                - breakdown.capitalized_fees
                - breakdown.financed_products
            )
            notes.append(f"Lease taxed on the gross cap cost ${price:,.2f}")

        credit = policy.trade_in.credit(breakdown.trade_allowance, price)
        if breakdown.trade_allowance > 0:
            notes.append(
                f"Trade-in credit {policy.trade_in.describe()}: ${credit:,.2f}"
            )
        vehicle_base = clamp_floor(price - credit - breakdown.non_taxable_rebates)
        if policy.tax_on_negative_equity and breakdown.negative_equity > 0:
            vehicle_base += breakdown.negative_equity

        if rules.vehicle_only:
            fees_base = products_base = ZERO
            notes.append("Fees and F&I products are outside the title tax base")
        else:
            fees_base = breakdown.taxable_fees
            products_base = breakdown.taxable_products

        lease = None
        total_tax = round_money((vehicle_base + fees_base + products_base) * rate)
        if structure is not None:
            lease = LeaseTaxDetail(
                method=LeaseTaxMethod.FULL_UPFRONT,
                taxable_cap_reduction=ZERO,
                upfront_base=vehicle_base + fees_base + products_base,
                monthly_base=ZERO,
                upfront_tax=total_tax,
                monthly_tax=ZERO,
                term_months=structure.term_months,
                structure=structure,
            )
        return self._build(
            policy,
            resolution,
            deal_type,
            credit,
            vehicle_base,
            fees_base,
            products_base,
            notes,
            total_tax=total_tax,
            lease=lease,
            state_rate=rate,
        )

    # ------------------------------------------------------------------

    def _build(
        self,
        policy: JurisdictionPolicy,
        resolution: LocalRateResolution,
        deal_type: DealType,
        credit: Decimal,
        vehicle_base: Decimal,
        fees_base: Decimal,
        products_base: Decimal,
        notes: list[str],
        total_tax: Optional[Decimal] = None,
        lease: Optional[LeaseTaxDetail] = None,
        state_rate: Optional[Decimal] = None,
    ) -> TaxBreakdown:
        if state_rate is None:
            state_rate = policy.state_rate
        local_rate = combined_rate(policy, resolution) - policy.state_rate
        rate = state_rate + local_rate
        taxable_base = vehicle_base + fees_base + products_base
        if total_tax is None:
            total_tax = round_money(taxable_base * rate)

        vehicle_tax, fees_tax, products_tax, diff = _reconcile(
            total_tax, rate, vehicle_base, fees_base, products_base
        )
        state_tax = (
            round_money(total_tax * state_rate / rate) if rate else ZERO
        )
        if rate == 0:
            notes.append(f"{policy.name} does not tax this transaction")

        logger.debug(
            "%s tax on base %s at %s: %s", policy.code, taxable_base, rate, total_tax
        )
        return TaxBreakdown(
            jurisdiction_code=policy.code,
            deal_type=deal_type,
            policy_version=policy.version,
            state_rate=state_rate,
            local_rate=local_rate,
            local_rate_source=(
                resolution.source
                if policy.vehicle_tax_scheme == VehicleTaxScheme.STATE_PLUS_LOCAL
                else RateSource.NONE
            ),
            trade_credit=credit,
            vehicle_base=vehicle_base,
            fees_base=fees_base,
            products_base=products_base,
            taxable_base=taxable_base,
            vehicle_tax=vehicle_tax,
            fees_tax=fees_tax,
            products_tax=products_tax,
            state_tax=state_tax,
            local_tax=total_tax - state_tax,
            total_tax=total_tax,
            rounding_difference=diff,
            lease=lease,
            local_resolution=resolution,
            notes=tuple(notes),
        )


def compute_tax(
    breakdown: PriceBreakdown,
    jurisdiction_code: str,
    postal_code: Optional[str] = None,
    deal_type: DealType = DealType.CASH,
    lease_terms: Optional[LeaseTerms] = None,
    as_of: Optional[date] = None,
    calculator: Optional[TaxCalculator] = None,
) -> TaxBreakdown:
    """
    Compute tax for a priced deal.

    Pass a calculator built over an explicit store in long-running
    code; without one the bundled datasets are loaded for the call.
    """
    calculator = calculator or TaxCalculator()
    return calculator.calculate(
        breakdown, jurisdiction_code, postal_code, deal_type, lease_terms, as_of
    )
