"""
Deal report generator.

Produces:
- Deal quote reports (price, tax, payment, reciprocity, gross)
- Payment matrix reports
- Amortization schedule exports
- Jurisdiction policy summaries
- CSV and JSON export
"""

from __future__ import annotations

import csv
import io
import json
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from autotax.deal_calculator import DealResult
from autotax.matrix import PaymentMatrix
from autotax.payments import AmortizationSchedule
from autotax.policies import JurisdictionPolicy


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date and Enum values."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def _decimal_to_float(obj: Any) -> Any:
    """Recursively convert Decimal values to float for serialization."""
    if isinstance(obj, dict):
        return {k: _decimal_to_float(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_decimal_to_float(i) for i in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


class ReportGenerator:
    """
    Builds deal reports as structured dicts, renders them to console
    text, and exports them to JSON or CSV.

    Files are written under ``output_dir`` only when a filename is given.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("reports")

    def _write(self, filename: str, content: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_text(content, encoding="utf-8")
        return path

    # ------------------------------------------------------------------
    # Deal quote
    # ------------------------------------------------------------------

    def quote_report(self, result: DealResult) -> dict[str, Any]:
        """Full breakdown of a priced deal."""
        report: dict[str, Any] = {
            "report_type": "deal_quote",
            "generated_date": date.today().isoformat(),
            "deal_id": result.deal_id,
            "deal_type": result.deal_type.value,
            "jurisdiction": result.jurisdiction_code,
            "policy_dataset": result.policy_dataset,
            "is_valid": result.is_valid,
            "validation_errors": list(result.validation_errors),
        }
        if not result.is_valid:
            return report

        price = result.price
        tax = result.tax
        report["price"] = {
            "msrp": price.msrp,
            "selling_price": price.selling_price,
            "trade_allowance": price.trade_allowance,
            "trade_payoff": price.trade_payoff,
            "net_trade": price.net_trade,
            "total_rebates": price.total_rebates,
            "taxable_rebates": price.taxable_rebates,
            "total_fees": price.total_fees,
            "taxable_fees": price.taxable_fees,
            "total_products": price.total_products,
            "financed_products": price.financed_products,
            "cash_down": price.cash_down,
        }
        report["summary"] = {
            "taxable_base": tax.taxable_base,
            "state_rate": tax.state_rate,
            "local_rate": tax.local_rate,
            "combined_rate": tax.combined_rate,
            "state_tax": tax.state_tax,
            "local_tax": tax.local_tax,
            "total_tax": tax.total_tax,
            "monthly_payment": result.monthly_payment,
            "amount_financed": result.totals.amount_financed,
            "total_due": result.totals.total_due,
            "balance_due": result.totals.balance_due,
            "finance_charge": result.totals.finance_charge,
            "total_of_payments": result.totals.total_of_payments,
            "total_sale_price": result.totals.total_sale_price,
        }
        report["tax_lines"] = [
            {"component": "vehicle", "base": tax.vehicle_base, "tax": tax.vehicle_tax},
            {"component": "fees", "base": tax.fees_base, "tax": tax.fees_tax},
            {
                "component": "products",
                "base": tax.products_base,
                "tax": tax.products_tax,
            },
        ]
        report["local_rate_source"] = tax.local_rate_source.value
        report["warnings"] = list(tax.notes)

        if tax.lease is not None:
            lease = result.lease
            structure = lease.structure
            report["lease"] = {
                "method": tax.lease.method.value,
                "gross_cap_cost": structure.gross_cap_cost,
                "cap_cost_reduction": structure.cap_cost_reduction,
                "adjusted_cap_cost": structure.adjusted_cap_cost,
                "residual_value": structure.residual_value,
                "money_factor": structure.money_factor,
                "equivalent_apr": lease.equivalent_apr,
                "depreciation": structure.depreciation,
                "rent_charge": structure.rent_charge,
                "base_payment": structure.base_payment,
                "monthly_tax": lease.monthly_tax,
                "upfront_tax": lease.upfront_tax,
                "due_at_signing": lease.due_at_signing,
                "cash_due_at_signing": lease.cash_due_at_signing,
                "one_pay": lease.one_pay,
                "security_deposit": structure.security_deposit,
                "total_lease_cost": lease.total_lease_cost,
            }
        if result.finance is not None:
            finance = result.finance
            report["finance"] = {
                "apr": finance.apr,
                "disclosed_apr": finance.disclosed_apr,
                "term_months": finance.term_months,
                "frequency": finance.frequency.value,
                "periods": finance.periods,
                "payment": finance.payment,
            }
        if result.reciprocity is not None:
            r = result.reciprocity
            report["reciprocity"] = {
                "home_state": r.home_code,
                "selling_state": r.selling_code,
                "applicable": r.applicable,
                "home_tax": r.home_tax,
                "tax_paid": r.tax_paid,
                "credit": r.credit,
                "owed": r.owed,
                "reason": r.reason,
                "days_elapsed": r.days_elapsed,
            }
        report["profit"] = {
            "front_end_gross": result.profit.front_end_gross,
            "back_end_gross": result.profit.back_end_gross,
            "total_gross": result.profit.total_gross,
        }
        return report

    # ------------------------------------------------------------------
    # Matrix and schedule
    # ------------------------------------------------------------------

    def matrix_report(self, matrix: PaymentMatrix) -> dict[str, Any]:
        cheapest = matrix.cheapest_total_cost()
        lowest = matrix.lowest_payment()
        return {
            "report_type": "payment_matrix",
            "generated_date": date.today().isoformat(),
            "summary": {
                "amount_financed": matrix.amount_financed,
                "base_apr": matrix.base_apr,
                "scenario_count": len(matrix),
            },
            "scenarios": [
                {
                    "term_months": s.term_months,
                    "apr": s.apr,
                    "payment": s.payment,
                    "total_interest": s.total_interest,
                    "total_cost": s.total_cost,
                }
                for s in matrix.scenarios
            ],
            "lowest_payment_term": lowest.term_months if lowest else None,
            "cheapest_total_cost_term": cheapest.term_months if cheapest else None,
        }

    def export_schedule(
        self, schedule: AmortizationSchedule, filename: str
    ) -> str:
        """Write an amortization schedule to CSV. Returns the CSV string."""
        df = schedule.to_dataframe()
        csv_str = df.to_csv(index=False)
        self._write(filename, csv_str)
        return csv_str

    # ------------------------------------------------------------------
    # Policy summary
    # ------------------------------------------------------------------

    def policy_report(self, policies: list[JurisdictionPolicy]) -> dict[str, Any]:
        return {
            "report_type": "jurisdiction_policies",
            "generated_date": date.today().isoformat(),
            "jurisdictions": [
                {
                    "code": p.code,
                    "name": p.name,
                    "version": p.version,
                    "effective_date": p.effective_date,
                    "state_rate": p.state_rate,
                    "average_local_rate": p.average_local_rate,
                    "scheme": p.vehicle_tax_scheme.value,
                    "trade_in": p.trade_in.describe(),
                    "lease_method": p.lease.method.value,
                    "reciprocity": p.reciprocity.enabled,
                }
                for p in policies
            ],
        }

    def policies_dataframe(self, policies: list[JurisdictionPolicy]) -> pd.DataFrame:
        rows = _decimal_to_float(self.policy_report(policies)["jurisdictions"])
        return pd.DataFrame(rows)

    # ------------------------------------------------------------------
    # Export methods
    # ------------------------------------------------------------------

    def to_json(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
    ) -> str:
        """Export a report to JSON. Returns the JSON string."""
        serializable = _decimal_to_float(report)
        json_str = json.dumps(serializable, indent=2, cls=_DecimalEncoder)

        if filename:
            self._write(filename, json_str)

        return json_str

    def to_csv(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
        section: str = "scenarios",
    ) -> str:
        """
        Export a report section to CSV. Returns the CSV string.

        The section parameter names the list or dict in the report to
        export as rows.
        """
        data = report.get(section, [])
        if not data:
            return ""

        output = io.StringIO()

        if isinstance(data, list) and isinstance(data[0], dict):
            writer = csv.DictWriter(output, fieldnames=list(data[0].keys()))
            writer.writeheader()
            for row in data:
                writer.writerow(_decimal_to_float(row))
        elif isinstance(data, dict):
            writer = csv.writer(output)
            writer.writerow(["key", "value"])
            for k, v in data.items():
                writer.writerow([k, _decimal_to_float(v)])

        csv_str = output.getvalue()

        if filename:
            self._write(filename, csv_str)

        return csv_str

    # ------------------------------------------------------------------
    # Console-formatted text output
    # ------------------------------------------------------------------

    def format_text(self, report: dict[str, Any]) -> str:
        """Format a report as human-readable text for console output."""
        lines: list[str] = []
        report_type = report.get("report_type", "report").replace("_", " ").title()
        lines.append(f"{'=' * 60}")
        lines.append(f"  {report_type}")
        lines.append(f"  Generated: {report.get('generated_date', '')}")
        if report.get("jurisdiction"):
            lines.append(
                f"  Jurisdiction: {report['jurisdiction']} "
                f"({report.get('deal_type', '')})"
            )
        lines.append(f"{'=' * 60}")
        lines.append("")

        errors = report.get("validation_errors", [])
        if errors:
            lines.append("VALIDATION ERRORS")
            lines.append("-" * 40)
            for e in errors:
                lines.append(f"  * {e}")
            lines.append("")

        summary = report.get("summary", {})
        if summary:
            lines.append("SUMMARY")
            lines.append("-" * 40)
            for key, value in summary.items():
                label = key.replace("_", " ").title()
                if isinstance(value, (float, Decimal)):
                    if "rate" in key:
                        lines.append(f"  {label}: {float(value):.3%}")
                    elif "apr" in key:
                        lines.append(f"  {label}: {float(value):.2f}%")
                    else:
                        lines.append(f"  {label}: ${float(value):,.2f}")
                else:
                    lines.append(f"  {label}: {value}")
            lines.append("")

        tax_lines = report.get("tax_lines", [])
        if tax_lines:
            lines.append("TAX COMPONENTS")
            lines.append("-" * 40)
            for t in tax_lines:
                lines.append(
                    f"  {t['component']:<10} ${float(t['base']):>12,.2f} base | "
                    f"${float(t['tax']):>10,.2f} tax"
                )
            lines.append("")

        scenarios = report.get("scenarios", [])
        if scenarios:
            lines.append("SCENARIOS")
            lines.append("-" * 40)
            for s in scenarios:
                lines.append(
                    f"  {s['term_months']:>3} mo @ {float(s['apr']):>5.2f}%: "
                    f"${float(s['payment']):>9,.2f}/mo | "
                    f"${float(s['total_interest']):>10,.2f} interest"
                )
            lines.append("")

        recip = report.get("reciprocity")
        if recip:
            lines.append("RECIPROCITY")
            lines.append("-" * 40)
            lines.append(
                f"  {recip['selling_state']} -> {recip['home_state']}: "
                f"credit ${float(recip['credit']):,.2f}, "
                f"owed ${float(recip['owed']):,.2f}"
            )
            lines.append(f"  {recip['reason']}")
            lines.append("")

        warnings = report.get("warnings", [])
        if warnings:
            lines.append("NOTES")
            lines.append("-" * 40)
            for w in warnings:
                lines.append(f"  * {w}")
            lines.append("")

        return "\n".join(lines)
