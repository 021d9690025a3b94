"""
Cross-jurisdiction reciprocity.

When a buyer registers the vehicle outside the selling jurisdiction,
the home jurisdiction's rules decide how much of the tax paid at the
point of sale is credited against the tax the home state would charge.
The outcome is reported separately and never alters the selling-state
tax breakdown.

The home tax is computed at the buyer's registration postal code when
one is given. A home state may carry per-origin overrides that refuse
credit, change the proof window, or demand that the origin state credits
the home state in turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from autotax.calculator import TaxBreakdown, TaxCalculator
from autotax.deal import DealInput
from autotax.money import ZERO, clamp_floor, round_money
from autotax.payments import structure_lease
from autotax.policies import CreditBasis, HomeStateBehavior, PolicySnapshot
from autotax.pricing import assemble_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReciprocityOutcome:
    home_code: str
    selling_code: str
    applicable: bool
    home_tax: Decimal
    tax_paid: Decimal
    credit: Decimal
    owed: Decimal
    reason: str
    days_elapsed: Optional[int] = None
    home_breakdown: Optional[TaxBreakdown] = field(default=None, repr=False)
    notes: tuple[str, ...] = field(default_factory=tuple)


class ReciprocityResolver:
    """Applies the home jurisdiction's reciprocity rules to a deal."""

    def __init__(self, calculator: TaxCalculator) -> None:
        self.calculator = calculator

    def resolve(
        self,
        deal: DealInput,
        selling_tax: TaxBreakdown,
        snapshot: Optional[PolicySnapshot] = None,
        registration_date: Optional[date] = None,
    ) -> ReciprocityOutcome:
        """
        Tax owed to the buyer's home jurisdiction after credit.

        ``registration_date`` defaults to the deal date and is the end of
        the proof-of-payment window.
        """
        snapshot = snapshot or self.calculator.store.snapshot
        home_code = (deal.registration_state or deal.jurisdiction_code).upper()
        selling_code = deal.jurisdiction_code
        tax_paid = selling_tax.total_tax

        if home_code == selling_code:
            return ReciprocityOutcome(
                home_code=home_code,
                selling_code=selling_code,
                applicable=False,
                home_tax=tax_paid,
                tax_paid=tax_paid,
                credit=ZERO,
                owed=ZERO,
                reason="Registered in the selling jurisdiction",
            )

        home_policy = snapshot.get(home_code, deal.as_of)
        home_price = assemble_price(deal, home_policy)
        structure = (
            structure_lease(home_price, deal.lease_terms)
            if deal.is_lease and deal.lease_terms is not None
            else None
        )
        home_breakdown = self.calculator.calculate_for_policy(
            home_price,
            home_policy,
            deal.registration_postal_code,
            deal.deal_type,
            structure,
            deal.as_of,
        )
        home_tax = home_breakdown.total_tax
        rules = home_policy.reciprocity

        def outcome(
            credit: Decimal,
            reason: str,
            applicable: bool = True,
            days: Optional[int] = None,
            owed: Optional[Decimal] = None,
        ) -> ReciprocityOutcome:
            if owed is None:
                owed = clamp_floor(home_tax - credit)
            logger.debug(
                "Reciprocity %s->%s: credit %s, owed %s (%s)",
                selling_code,
                home_code,
                credit,
                owed,
                reason,
            )
            return ReciprocityOutcome(
                home_code=home_code,
                selling_code=selling_code,
                applicable=applicable,
                home_tax=home_tax,
                tax_paid=tax_paid,
                credit=credit,
                owed=owed,
                reason=reason,
                days_elapsed=days,
                home_breakdown=home_breakdown,
                notes=home_breakdown.notes,
            )

        if not rules.enabled:
            return outcome(ZERO, f"{home_code} grants no reciprocity credit", False)
        if selling_code in rules.exempt_states:
            return outcome(
                home_tax,
                f"{selling_code} purchases are exempt in {home_code}",
                owed=ZERO,
            )
        override = rules.override_for(selling_code)
        if selling_code in rules.non_reciprocal_states or (
            override is not None and override.disallow_credit
        ):
            return outcome(
                ZERO, f"{home_code} does not reciprocate with {selling_code}", False
            )
        if not rules.covers(deal.is_lease):
            return outcome(
                ZERO,
                f"{home_code} reciprocity is limited to {rules.scope.value}",
                False,
            )
        if deal.is_lease and rules.has_lease_exception:
            return outcome(ZERO, f"{home_code} excludes leases from credit", False)

        behavior = rules.home_state_behavior
        window = rules.proof_window_days
        cap = rules.cap_at_this_states_tax
        if override is not None:
            if override.home_state_behavior is not None:
                behavior = override.home_state_behavior
            if override.proof_window_days is not None:
                window = override.proof_window_days
            if override.cap_at_this_states_tax is not None:
                cap = override.cap_at_this_states_tax
        if behavior == HomeStateBehavior.NONE:
            return outcome(ZERO, f"{home_code} credits no out-of-state tax", False)

        if override is not None and override.requires_mutual_credit:
            selling_rules = snapshot.get(selling_code, deal.as_of).reciprocity
            if not selling_rules.credits(home_code):
                return outcome(
                    ZERO,
                    f"{selling_code} gives no credit for {home_code} tax; "
                    f"{home_code} requires mutual credit",
                    False,
                )
        if (
            override is not None
            and override.requires_same_owner
            and deal.origin_same_owner is not True
        ):
            return outcome(
                ZERO,
                f"{home_code} requires the owner who paid tax in {selling_code}; "
                "credit forfeited",
            )

        registration_date = registration_date or deal.as_of
        paid_date = deal.origin_tax_paid_date
        days: Optional[int] = None
        if paid_date is None:
            if rules.require_proof_of_tax_paid:
                return outcome(ZERO, "No proof of tax paid; credit forfeited")
        else:
            days = (registration_date - paid_date).days
            if days < 0:
                return outcome(
                    ZERO,
                    "Tax paid date is after registration; credit forfeited",
                    days=days,
                )
            if window is not None and days > window:
                return outcome(
                    ZERO,
                    f"Tax paid {days} days before registration, outside the "
                    f"{window}-day window; credit forfeited",
                    days=days,
                )

        if rules.basis == CreditBasis.RATE_BASED:
            rate = min(selling_tax.combined_rate, home_breakdown.combined_rate)
            credit = round_money(home_breakdown.taxable_base * rate)
        else:
            credit = tax_paid

        if behavior == HomeStateBehavior.CREDIT_UP_TO_STATE_RATE or cap:
            credit = min(credit, home_tax)

        return outcome(
            credit,
            f"{home_code} credits tax paid to {selling_code} ({behavior.value})",
            days=days,
        )
