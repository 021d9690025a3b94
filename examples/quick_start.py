#!/usr/bin/env python3
"""
Quick Start Example
===================

Demonstrates basic usage of the DealCalculator to price a financed
purchase in Michigan with a trade-in, then compares terms with the
payment matrix.

Usage:
    python examples/quick_start.py
"""

from datetime import date
from decimal import Decimal

from autotax.deal import DealInput, DealType, Fee, FinanceTerms, TradeIn
from autotax.deal_calculator import DealCalculator
from autotax.local_rates import LocalRateTable
from autotax.matrix import generate_matrix
from autotax.policies import JurisdictionPolicyStore


def main() -> None:
    # Load the bundled policy and local rate datasets
    store = JurisdictionPolicyStore.bundled()
    rates = LocalRateTable.bundled()
    calculator = DealCalculator(store, rates)

    # A $30,000 purchase in Michigan with a $15,000 trade, financed
    deal = DealInput(
        deal_id="QS-001",
        deal_type=DealType.FINANCE,
        jurisdiction_code="MI",
        msrp=Decimal("32000.00"),
        selling_price=Decimal("30000.00"),
        trade_in=TradeIn(allowance=Decimal("15000.00"), payoff=Decimal("4000.00")),
        fees=[Fee(code="TITLE", name="Title", amount=Decimal("15.00"))],
        cash_down=Decimal("2000.00"),
        finance_terms=FinanceTerms(apr=Decimal("6.0"), term_months=60),
        deal_date=date(2024, 8, 1),
    )

    result = calculator.compute(deal)
    tax = result.tax

    # Print the result
    print(f"Deal:            {result.deal_id}")
    print(f"Jurisdiction:    {result.jurisdiction_code}")
    print(f"Trade Credit:    ${tax.trade_credit:,.2f}")
    print(f"Taxable Base:    ${tax.taxable_base:,.2f}")
    print(f"Total Tax:       ${tax.total_tax:,.2f}")
    print(f"Amount Financed: ${result.finance.amount_financed:,.2f}")
    print(f"Payment:         ${result.finance.payment:,.2f}")
    print(f"Finance Charge:  ${result.finance.finance_charge:,.2f}")

    for note in tax.notes:
        print(f"Note:            {note}")

    # Compare terms for the same amount financed
    print("\n--- Payment Matrix ---")
    matrix = generate_matrix(
        result.finance.amount_financed,
        Decimal("6.0"),
        terms=[48, 60, 72],
        rate_variations=[Decimal("-1"), Decimal("0"), Decimal("1")],
    )
    for s in matrix.scenarios:
        print(
            f"{s.term_months} mo @ {s.apr:.2f}%: ${s.payment:,.2f}/mo, "
            f"${s.total_interest:,.2f} interest"
        )


if __name__ == "__main__":
    main()
