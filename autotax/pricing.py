"""
Price breakdown assembly.

Splits a deal's money into the buckets the tax engine and the payment
calculator work from: trade equity, rebates by taxability, fees by
taxability and capitalization, and products by taxability and whether
they are financed.

Taxability of each line resolves in order:
1. the explicit override on the line
2. the jurisdiction's per-origin or per-code table
3. the jurisdiction's global category flag
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from autotax.deal import DealInput
from autotax.money import ZERO
from autotax.policies import JurisdictionPolicy, ProductCategory, RebateOrigin


@dataclass(frozen=True)
class RebateLine:
    name: str
    amount: Decimal
    origin: RebateOrigin
    taxable: bool


@dataclass(frozen=True)
class FeeLine:
    code: str
    name: str
    amount: Decimal
    taxable: bool
    capitalized: bool  # rolled into the lease cap cost


@dataclass(frozen=True)
class ProductLine:
    code: str
    name: str
    category: ProductCategory
    price: Decimal
    cost: Decimal
    taxable: bool
    financed: bool


def _total(amounts) -> Decimal:
    return sum(amounts, ZERO)


@dataclass(frozen=True)
class PriceBreakdown:
    """Resolved money buckets for one deal."""

    jurisdiction_code: str
    is_lease: bool
    msrp: Decimal
    selling_price: Decimal
    trade_allowance: Decimal
    trade_payoff: Decimal
    cash_down: Decimal
    rebates: tuple[RebateLine, ...]
    fees: tuple[FeeLine, ...]
    products: tuple[ProductLine, ...]
    vehicle_class: Optional[str] = None

    # ── Trade ───────────────────────────────────────────────────────

    @property
    def net_trade(self) -> Decimal:
        return self.trade_allowance - self.trade_payoff

    @property
    def trade_equity(self) -> Decimal:
        return max(ZERO, self.net_trade)

    @property
    def negative_equity(self) -> Decimal:
        return max(ZERO, -self.net_trade)

    # ── Rebates ─────────────────────────────────────────────────────

    @property
    def total_rebates(self) -> Decimal:
        return _total(r.amount for r in self.rebates)

    @property
    def taxable_rebates(self) -> Decimal:
        return _total(r.amount for r in self.rebates if r.taxable)

    @property
    def non_taxable_rebates(self) -> Decimal:
        return _total(r.amount for r in self.rebates if not r.taxable)

    # ── Fees ────────────────────────────────────────────────────────

    @property
    def total_fees(self) -> Decimal:
        return _total(f.amount for f in self.fees)

    @property
    def taxable_fees(self) -> Decimal:
        return _total(f.amount for f in self.fees if f.taxable)

    @property
    def non_taxable_fees(self) -> Decimal:
        return _total(f.amount for f in self.fees if not f.taxable)

    @property
    def capitalized_fees(self) -> Decimal:
        return _total(f.amount for f in self.fees if f.capitalized)

    @property
    def uncapitalized_fees(self) -> Decimal:
        return _total(f.amount for f in self.fees if not f.capitalized)

    @property
    def uncapitalized_taxable_fees(self) -> Decimal:
        return _total(
            f.amount for f in self.fees if f.taxable and not f.capitalized
        )

    # ── Products ────────────────────────────────────────────────────

    @property
    def total_products(self) -> Decimal:
        return _total(p.price for p in self.products)

    @property
    def financed_products(self) -> Decimal:
        return _total(p.price for p in self.products if p.financed)

    @property
    def cash_products(self) -> Decimal:
        return _total(p.price for p in self.products if not p.financed)

    @property
    def taxable_products(self) -> Decimal:
        return _total(p.price for p in self.products if p.taxable)

    @property
    def product_cost(self) -> Decimal:
        return _total(p.cost for p in self.products)


def assemble_price(deal: DealInput, policy: JurisdictionPolicy) -> PriceBreakdown:
    """Resolve every line of a deal against one jurisdiction's policy."""
    lease = deal.is_lease

    rebates = tuple(
        RebateLine(
            name=r.name,
            amount=r.amount,
            origin=r.origin,
            taxable=(
                r.taxable
                if r.taxable is not None
                else policy.is_rebate_taxable(r.origin)
            ),
        )
        for r in deal.rebates
    )

    fees = tuple(
        FeeLine(
            code=f.code,
            name=f.name,
            amount=f.amount,
            taxable=(
                f.taxable
                if f.taxable is not None
                else policy.is_fee_taxable(f.code, lease=lease)
            ),
            capitalized=lease and f.capitalize_in_lease,
        )
        for f in deal.fees
    )

    products = tuple(
        ProductLine(
            code=p.code,
            name=p.name,
            category=p.category,
            price=p.price,
            cost=p.cost,
            taxable=(
                p.taxable
                if p.taxable is not None
                else policy.is_product_taxable(p.code, p.category, lease=lease)
            ),
            financed=p.finance_with_deal,
        )
        for p in deal.products
    )

    trade = deal.trade_in
    return PriceBreakdown(
        jurisdiction_code=policy.code,
        is_lease=lease,
        msrp=deal.msrp,
        selling_price=deal.selling_price,
        trade_allowance=trade.allowance if trade else ZERO,
        trade_payoff=trade.payoff if trade else ZERO,
        cash_down=deal.cash_down,
        rebates=rebates,
        fees=fees,
        products=products,
        vehicle_class=deal.vehicle_class,
    )
