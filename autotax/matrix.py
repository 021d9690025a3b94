"""
Payment scenario matrix.

Runs the finance payment formula across a grid of terms and rate
adjustments so a buyer can compare monthly payment against total cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

import pandas as pd

from autotax.money import ZERO, clamp_floor, round_money, to_decimal
from autotax.payments import finance_payment, total_interest
from autotax.settings import DEFAULT_MATRIX_TERMS


@dataclass(frozen=True)
class PaymentScenario:
    term_months: int
    apr: Decimal
    payment: Decimal
    total_interest: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class PaymentMatrix:
    amount_financed: Decimal
    base_apr: Decimal
    scenarios: tuple[PaymentScenario, ...]

    def __len__(self) -> int:
        return len(self.scenarios)

    def for_term(self, term_months: int) -> list[PaymentScenario]:
        return [s for s in self.scenarios if s.term_months == term_months]

    def lowest_payment(self) -> Optional[PaymentScenario]:
        if not self.scenarios:
            return None
        return min(self.scenarios, key=lambda s: (s.payment, s.total_cost))

    def cheapest_total_cost(self) -> Optional[PaymentScenario]:
        if not self.scenarios:
            return None
        return min(self.scenarios, key=lambda s: (s.total_cost, s.payment))

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "term_months": s.term_months,
                    "apr": float(s.apr),
                    "payment": float(s.payment),
                    "total_interest": float(s.total_interest),
                    "total_cost": float(s.total_cost),
                }
                for s in self.scenarios
            ],
            columns=["term_months", "apr", "payment", "total_interest", "total_cost"],
        )


def generate_matrix(
    amount_financed: Decimal,
    base_apr: Decimal,
    terms: Optional[Iterable[int]] = None,
    rate_variations: Iterable[Decimal] = (ZERO,),
) -> PaymentMatrix:
    """
    Payment, interest and total cost for every term and rate variation.

    Rate variations are added to the base APR (floored at zero).
    Scenarios are sorted by term, then rate.
    """
    amount = to_decimal(amount_financed)
    base = to_decimal(base_apr)
    term_list = sorted(set(terms if terms is not None else DEFAULT_MATRIX_TERMS))
    rates = sorted({clamp_floor(base + to_decimal(v)) for v in rate_variations})

    scenarios = []
    for term in term_list:
        if term <= 0:
            raise ValueError(f"Matrix term must be positive, got {term}")
        for apr in rates:
            payment = finance_payment(amount, apr, term)
            interest = total_interest(amount, payment, term)
            scenarios.append(
                PaymentScenario(
                    term_months=term,
                    apr=apr,
                    payment=payment,
                    total_interest=interest,
                    total_cost=round_money(amount + interest),
                )
            )
    return PaymentMatrix(
        amount_financed=amount, base_apr=base, scenarios=tuple(scenarios)
    )
