"""
Vehicle Deal Tax Engine
=======================

Jurisdiction-aware sales tax, finance and lease pricing for vehicle
deals.

Modules:
    policies        - Versioned per-state tax rules loaded from YAML
    local_rates     - Postal-code local rate table with fallbacks
    deal            - Deal input model
    pricing         - Price assembly and taxability resolution
    calculator      - Retail and lease tax calculation
    reciprocity     - Out-of-state registration credit
    payments        - Finance, amortization and lease payment math
    matrix          - Term and rate payment comparison
    validation      - Deal validation rules
    deal_calculator - End-to-end deal orchestration
    report_generator- Quote reporting with CSV/JSON export
    cli             - Command-line interface
"""

__version__ = "1.0.0"

from autotax.policies import JurisdictionPolicyStore
from autotax.local_rates import LocalRateTable
from autotax.deal import DealInput
from autotax.calculator import TaxCalculator
from autotax.deal_calculator import DealCalculator
from autotax.report_generator import ReportGenerator

__all__ = [
    "JurisdictionPolicyStore",
    "LocalRateTable",
    "DealInput",
    "TaxCalculator",
    "DealCalculator",
    "ReportGenerator",
]
