"""
Command-line interface for the deal tax engine.

Provides subcommands for pricing a deal, computing tax, comparing
payment terms, and inspecting the policy and local rate datasets.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from autotax.calculator import TaxCalculator
from autotax.deal import DealInput, DealType, TradeIn
from autotax.deal_calculator import DealCalculator, DealResult
from autotax.exceptions import AutoTaxError
from autotax.local_rates import LocalRateTable
from autotax.matrix import generate_matrix
from autotax.money import to_decimal
from autotax.payments import apr_to_money_factor, money_factor_to_apr
from autotax.policies import JurisdictionPolicyStore
from autotax.pricing import assemble_price
from autotax.report_generator import ReportGenerator
from autotax.settings import EngineSettings

console = Console()
logger = logging.getLogger("autotax")


def _settings(args: argparse.Namespace) -> EngineSettings:
    overrides = {}
    if getattr(args, "policies", None):
        overrides["policy_path"] = Path(args.policies)
    if getattr(args, "local_rates", None):
        overrides["local_rates_path"] = Path(args.local_rates)
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    return EngineSettings(**overrides)


def _load(settings: EngineSettings) -> tuple[JurisdictionPolicyStore, LocalRateTable]:
    store = JurisdictionPolicyStore.from_yaml(settings.policy_path)
    rates = LocalRateTable.from_csv(settings.local_rates_path)
    return store, rates


def _csv_list(raw: Optional[str]) -> list[Decimal]:
    return [to_decimal(x) for x in raw.split(",") if x.strip()] if raw else []


# -----------------------------------------------------------------------
# Subcommand: quote
# -----------------------------------------------------------------------


def _print_result(result: DealResult) -> None:
    if not result.is_valid:
        console.print(
            Panel(
                "\n".join(f"* {e}" for e in result.validation_errors),
                title="Validation Errors",
                border_style="red",
            )
        )
        return

    tax = result.tax
    console.print(
        Panel(
            f"[bold]Jurisdiction:[/bold] {result.jurisdiction_code} "
            f"({result.deal_type.value})\n"
            f"[bold]Taxable Base:[/bold] ${tax.taxable_base:,.2f}\n"
            f"[bold]Rate:[/bold] {tax.combined_rate:.3%} "
            f"(local: {tax.local_rate_source.value})\n"
            f"[bold]State Tax:[/bold] ${tax.state_tax:,.2f}\n"
            f"[bold]Local Tax:[/bold] ${tax.local_tax:,.2f}\n"
            f"[bold]Total Tax:[/bold] ${tax.total_tax:,.2f}\n"
            f"[bold]Monthly Payment:[/bold] ${result.monthly_payment:,.2f}\n"
            f"[bold]Due Now:[/bold] ${result.totals.total_due:,.2f}\n"
            f"[bold]Total Gross:[/bold] ${result.profit.total_gross:,.2f}",
            title="Deal Quote",
            border_style="blue",
        )
    )

    if result.lease is not None:
        lease = result.lease
        s = lease.structure
        table = Table(title="Lease Structure", box=box.SIMPLE)
        table.add_column("Item")
        table.add_column("Amount", justify="right")
        for label, value in [
            ("Gross cap cost", s.gross_cap_cost),
            ("Cap cost reduction", s.cap_cost_reduction),
            ("Adjusted cap cost", s.adjusted_cap_cost),
            ("Residual", s.residual_value),
            ("Depreciation", s.depreciation),
            ("Rent charge", s.rent_charge),
            ("Base payment", s.base_payment),
            ("Monthly tax", lease.monthly_tax),
            ("Upfront tax", lease.upfront_tax),
            ("Due at signing", lease.due_at_signing),
            ("Cash due at signing", lease.cash_due_at_signing),
        ]:
            table.add_row(label, f"${value:,.2f}")
        console.print(table)

    if result.reciprocity is not None:
        r = result.reciprocity
        console.print(
            Panel(
                f"{r.reason}\n\n"
                f"[bold]Home Tax:[/bold] ${r.home_tax:,.2f}  "
                f"[bold]Credit:[/bold] ${r.credit:,.2f}  "
                f"[bold]Owed:[/bold] ${r.owed:,.2f}",
                title=f"Reciprocity {r.selling_code} -> {r.home_code}",
                border_style="cyan",
            )
        )

    for note in tax.notes:
        console.print(f"[yellow]Note: {note}[/yellow]")


def cmd_quote(args: argparse.Namespace) -> None:
    """Price a deal from a JSON file."""
    path = Path(args.file)
    if not path.exists():
        console.print(f"[red]File not found: {args.file}[/red]")
        sys.exit(1)

    deal = DealInput.from_dict(json.loads(path.read_text(encoding="utf-8")))
    settings = _settings(args)
    store, rates = _load(settings)
    result = DealCalculator(store, rates, settings).compute(deal)
    _print_result(result)

    rg = ReportGenerator(args.output_dir)
    if args.export_json:
        rg.to_json(rg.quote_report(result), args.export_json)
        console.print(f"[green]Quote exported to {args.export_json}[/green]")
    if args.schedule_csv and result.finance is not None:
        rg.export_schedule(result.finance.schedule, args.schedule_csv)
        console.print(f"[green]Schedule exported to {args.schedule_csv}[/green]")

    if not result.is_valid:
        sys.exit(1)


# -----------------------------------------------------------------------
# Subcommand: tax
# -----------------------------------------------------------------------


def cmd_tax(args: argparse.Namespace) -> None:
    """Compute tax on a simple retail purchase."""
    settings = _settings(args)
    store, rates = _load(settings)
    deal_type = DealType(args.type.upper())

    price = to_decimal(args.price)
    deal = DealInput(
        deal_type=deal_type,
        jurisdiction_code=args.state,
        msrp=price,
        selling_price=price,
        trade_in=(
            TradeIn(to_decimal(args.trade), to_decimal(args.payoff or "0"))
            if args.trade
            else None
        ),
        postal_code=args.postal,
        vehicle_class=args.vehicle_class,
    )
    policy = store.get(deal.jurisdiction_code)
    breakdown = assemble_price(deal, policy)
    result = TaxCalculator(store, rates).calculate(
        breakdown, deal.jurisdiction_code, args.postal, deal_type
    )

    console.print(
        Panel(
            f"[bold]State:[/bold] {policy.name} ({policy.code})\n"
            f"[bold]Trade Credit:[/bold] ${result.trade_credit:,.2f}\n"
            f"[bold]Taxable Base:[/bold] ${result.taxable_base:,.2f}\n"
            f"[bold]State Rate:[/bold] {result.state_rate:.3%}\n"
            f"[bold]Local Rate:[/bold] {result.local_rate:.3%} "
            f"({result.local_rate_source.value})\n"
            f"[bold]State Tax:[/bold] ${result.state_tax:,.2f}\n"
            f"[bold]Local Tax:[/bold] ${result.local_tax:,.2f}\n"
            f"[bold]Total Tax:[/bold] ${result.total_tax:,.2f}",
            title="Tax Calculation",
            border_style="blue",
        )
    )
    for note in result.notes:
        console.print(f"[yellow]Note: {note}[/yellow]")


# -----------------------------------------------------------------------
# Subcommand: matrix
# -----------------------------------------------------------------------


def cmd_matrix(args: argparse.Namespace) -> None:
    """Compare payments across terms and rates."""
    settings = _settings(args)
    terms = (
        [int(t) for t in args.terms.split(",") if t.strip()]
        if args.terms
        else settings.matrix_terms
    )
    variations = _csv_list(args.variations) or [Decimal("0")]
    matrix = generate_matrix(
        to_decimal(args.amount), to_decimal(args.apr), terms, variations
    )

    table = Table(
        title=f"Payment Matrix: ${matrix.amount_financed:,.2f}",
        box=box.ROUNDED,
    )
    table.add_column("Term", justify="right", style="bold")
    table.add_column("APR", justify="right")
    table.add_column("Payment", justify="right")
    table.add_column("Interest", justify="right")
    table.add_column("Total Cost", justify="right")

    cheapest = matrix.cheapest_total_cost()
    for s in matrix.scenarios:
        table.add_row(
            f"{s.term_months} mo",
            f"{s.apr:.2f}%",
            f"${s.payment:,.2f}",
            f"${s.total_interest:,.2f}",
            f"${s.total_cost:,.2f}",
            style="green" if s is cheapest else "",
        )
    console.print(table)

    if args.export_csv:
        rg = ReportGenerator(args.output_dir)
        rg.to_csv(rg.matrix_report(matrix), args.export_csv)
        console.print(f"[green]Matrix exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Subcommand: policy
# -----------------------------------------------------------------------


def cmd_policy(args: argparse.Namespace) -> None:
    """Display jurisdiction policies."""
    settings = _settings(args)
    store = JurisdictionPolicyStore.from_yaml(settings.policy_path)

    if args.state:
        p = store.get(args.state)
        console.print(
            Panel(
                f"[bold]Jurisdiction:[/bold] {p.name} ({p.code}) v{p.version}, "
                f"effective {p.effective_date}\n"
                f"[bold]State Rate:[/bold] {p.state_rate:.3%}\n"
                f"[bold]Avg Local:[/bold] {p.average_local_rate:.3%}\n"
                f"[bold]Scheme:[/bold] {p.vehicle_tax_scheme.value}\n"
                f"[bold]Trade-in:[/bold] {p.trade_in.describe()}\n"
                f"[bold]Lease Method:[/bold] {p.lease.method.value}\n"
                f"[bold]Reciprocity:[/bold] "
                f"{p.reciprocity.home_state_behavior.value if p.reciprocity.enabled else 'None'}\n"
                f"[bold]Notes:[/bold] {p.notes}",
                title=f"{p.name} Vehicle Tax Policy",
                border_style="cyan",
            )
        )
        return

    table = Table(
        title=f"Jurisdiction Policies ({store.version})",
        box=box.ROUNDED,
    )
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("State Rate", justify="right")
    table.add_column("Scheme")
    table.add_column("Trade-in")
    table.add_column("Lease")

    for p in store.all_policies():
        table.add_row(
            p.code,
            p.name,
            f"{p.state_rate:.3%}" if p.state_rate > 0 else "None",
            p.vehicle_tax_scheme.value,
            p.trade_in.describe(),
            p.lease.method.value,
            style="dim" if p.state_rate == 0 and not p.has_local_tax else "",
        )
    console.print(table)


# -----------------------------------------------------------------------
# Subcommand: local-rate
# -----------------------------------------------------------------------


def cmd_local_rate(args: argparse.Namespace) -> None:
    """Resolve the local rate for a postal code."""
    settings = _settings(args)
    store, rates = _load(settings)
    policy = store.get(args.state)
    res = rates.resolve(args.postal, policy)

    lines = [
        f"[bold]Postal Code:[/bold] {res.postal_code or 'N/A'}",
        f"[bold]Source:[/bold] {res.source.value}",
        f"[bold]Local Rate:[/bold] {res.rate:.4%}",
    ]
    if res.record is not None:
        lines.append(f"[bold]County:[/bold] {res.record.county} ({res.county_rate:.4%})")
        lines.append(f"[bold]City:[/bold] {res.record.city} ({res.city_rate:.4%})")
        for name, rate in res.district_rates.items():
            lines.append(f"[bold]District {name}:[/bold] {rate:.4%}")
    console.print(Panel("\n".join(lines), title="Local Rate", border_style="cyan"))
    for note in res.notes:
        console.print(f"[yellow]Warning: {note}[/yellow]")


# -----------------------------------------------------------------------
# Subcommand: money-factor
# -----------------------------------------------------------------------


def cmd_money_factor(args: argparse.Namespace) -> None:
    """Convert between a money factor and an APR."""
    if args.mf is not None:
        mf = to_decimal(args.mf)
        console.print(f"Money factor {mf} = {money_factor_to_apr(mf):.3f}% APR")
    else:
        apr = to_decimal(args.apr)
        console.print(f"{apr}% APR = money factor {apr_to_money_factor(apr):.6f}")


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autotax",
        description="Vehicle Deal Tax Engine - jurisdiction-aware tax, finance and lease pricing",
    )
    parser.add_argument("--policies", help="Jurisdiction policy YAML file")
    parser.add_argument("--local-rates", help="Local rate CSV file")
    parser.add_argument("--log-level", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # quote
    quote_p = subparsers.add_parser("quote", help="Price a deal from JSON")
    quote_p.add_argument("--file", "-f", required=True, help="Deal JSON file")
    quote_p.add_argument("--export-json", help="Export quote to JSON file")
    quote_p.add_argument("--schedule-csv", help="Export amortization schedule to CSV")
    quote_p.add_argument("--output-dir", help="Output directory for exports")
    quote_p.set_defaults(func=cmd_quote)

    # tax
    tax_p = subparsers.add_parser("tax", help="Compute tax on a purchase")
    tax_p.add_argument("--state", "-s", required=True, help="Two-letter state code")
    tax_p.add_argument("--price", required=True, help="Selling price")
    tax_p.add_argument("--trade", help="Trade-in allowance")
    tax_p.add_argument("--payoff", help="Trade-in payoff")
    tax_p.add_argument("--postal", help="Postal code for local rate lookup")
    tax_p.add_argument(
        "--vehicle-class", help="Vehicle class for class-rated title taxes"
    )
    tax_p.add_argument(
        "--type", default="CASH", type=str.upper, choices=["CASH", "FINANCE"],
        help="Deal type",
    )
    tax_p.set_defaults(func=cmd_tax)

    # matrix
    matrix_p = subparsers.add_parser("matrix", help="Compare payment terms")
    matrix_p.add_argument("--amount", required=True, help="Amount financed")
    matrix_p.add_argument("--apr", required=True, help="Base APR in percent")
    matrix_p.add_argument("--terms", help="Comma-separated terms in months")
    matrix_p.add_argument("--variations", help="Comma-separated APR adjustments")
    matrix_p.add_argument("--export-csv", help="Export matrix to CSV file")
    matrix_p.add_argument("--output-dir", help="Output directory for exports")
    matrix_p.set_defaults(func=cmd_matrix)

    # policy
    policy_p = subparsers.add_parser("policy", help="View jurisdiction policies")
    policy_p.add_argument("--state", "-s", help="State code to look up")
    policy_p.set_defaults(func=cmd_policy)

    # local-rate
    local_p = subparsers.add_parser("local-rate", help="Resolve a local rate")
    local_p.add_argument("--postal", required=True, help="Postal code")
    local_p.add_argument("--state", "-s", required=True, help="State code")
    local_p.set_defaults(func=cmd_local_rate)

    # money-factor
    mf_p = subparsers.add_parser("money-factor", help="Convert money factor and APR")
    mf_group = mf_p.add_mutually_exclusive_group(required=True)
    mf_group.add_argument("--mf", help="Money factor to convert to APR")
    mf_group.add_argument("--apr", help="APR in percent to convert to money factor")
    mf_p.set_defaults(func=cmd_money_factor)

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        configure_logging(_settings(args).log_level)
        args.func(args)
    except AutoTaxError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        sys.exit(1)
