"""Tests for quote reporting and export."""

import json
from datetime import date
from decimal import Decimal

import pytest

from autotax.deal import DealInput, DealType, FinanceTerms, LeaseTerms, TradeIn
from autotax.deal_calculator import DealCalculator, DealResult
from autotax.local_rates import LocalRateTable
from autotax.matrix import generate_matrix
from autotax.policies import JurisdictionPolicyStore
from autotax.report_generator import ReportGenerator

AS_OF = date(2024, 8, 1)


@pytest.fixture
def store() -> JurisdictionPolicyStore:
    return JurisdictionPolicyStore.bundled()


@pytest.fixture
def calc(store: JurisdictionPolicyStore) -> DealCalculator:
    return DealCalculator(store, LocalRateTable.bundled())


@pytest.fixture
def rg(tmp_path) -> ReportGenerator:
    return ReportGenerator(str(tmp_path))


def _finance_result(calc: DealCalculator) -> DealResult:
    return calc.compute(
        DealInput(
            deal_id="RPT-1",
            deal_type=DealType.FINANCE,
            jurisdiction_code="NC",
            registration_state="MI",
            origin_tax_paid_date=AS_OF,
            msrp=Decimal("32000"),
            selling_price=Decimal("30000"),
            trade_in=TradeIn(Decimal("5000")),
            finance_terms=FinanceTerms(
                Decimal("6"), 60, first_payment_date=date(2024, 9, 1)
            ),
            deal_date=AS_OF,
        )
    )


# ── Quote report ─────────────────────────────────────────────────────


def test_quote_report_sections(rg: ReportGenerator, calc: DealCalculator):
    report = rg.quote_report(_finance_result(calc))
    assert report["report_type"] == "deal_quote"
    assert report["deal_id"] == "RPT-1"
    assert report["is_valid"] is True
    # NC 3% on 30,000 - 5,000
    assert report["summary"]["total_tax"] == Decimal("750.00")
    assert report["finance"]["term_months"] == 60
    assert report["reciprocity"]["home_state"] == "MI"
    assert [t["component"] for t in report["tax_lines"]] == [
        "vehicle",
        "fees",
        "products",
    ]
    assert "lease" not in report


def test_lease_quote_report(rg: ReportGenerator, calc: DealCalculator):
    result = calc.compute(
        DealInput(
            deal_type=DealType.LEASE,
            jurisdiction_code="MI",
            msrp=Decimal("30000"),
            selling_price=Decimal("30000"),
            lease_terms=LeaseTerms(36, Decimal("0.002"), Decimal("20000")),
            deal_date=AS_OF,
        )
    )
    report = rg.quote_report(result)
    assert report["lease"]["method"] == "MONTHLY"
    assert report["lease"]["base_payment"] == Decimal("377.78")
    assert report["summary"]["monthly_payment"] == Decimal("400.45")
    assert report["lease"]["cash_due_at_signing"] == Decimal("400.45")
    assert report["lease"]["one_pay"] is False


def test_invalid_quote_report(rg: ReportGenerator, calc: DealCalculator):
    result = calc.compute(
        DealInput(
            deal_type=DealType.CASH,
            jurisdiction_code="MI",
            msrp=Decimal("0"),
            selling_price=Decimal("0"),
            deal_date=AS_OF,
        )
    )
    report = rg.quote_report(result)
    assert report["is_valid"] is False
    assert "summary" not in report
    text = rg.format_text(report)
    assert "VALIDATION ERRORS" in text
    assert "Selling price must be greater than zero" in text


# ── Exports ──────────────────────────────────────────────────────────


def test_to_json_writes_file(rg: ReportGenerator, calc: DealCalculator, tmp_path):
    json_str = rg.to_json(rg.quote_report(_finance_result(calc)), "quote.json")
    data = json.loads(json_str)
    assert data["summary"]["total_tax"] == 750.0
    assert data["deal_type"] == "FINANCE"
    assert (tmp_path / "quote.json").exists()


def test_to_json_without_filename_writes_nothing(tmp_path):
    rg = ReportGenerator(str(tmp_path / "out"))
    rg.to_json({"report_type": "x", "value": Decimal("1.50")})
    assert not (tmp_path / "out").exists()


def test_matrix_csv(rg: ReportGenerator, tmp_path):
    matrix = generate_matrix(Decimal("20000"), Decimal("6"), terms=[48, 60])
    report = rg.matrix_report(matrix)
    assert report["cheapest_total_cost_term"] == 48
    assert report["lowest_payment_term"] == 60
    csv_str = rg.to_csv(report, "matrix.csv")
    lines = csv_str.strip().splitlines()
    assert lines[0] == "term_months,apr,payment,total_interest,total_cost"
    assert len(lines) == 3
    assert (tmp_path / "matrix.csv").exists()


def test_csv_of_dict_section(rg: ReportGenerator):
    csv_str = rg.to_csv({"summary": {"total_tax": Decimal("750.00")}}, section="summary")
    assert "total_tax,750.0" in csv_str


def test_csv_missing_section(rg: ReportGenerator):
    assert rg.to_csv({"report_type": "x"}) == ""


def test_export_schedule(rg: ReportGenerator, calc: DealCalculator, tmp_path):
    result = _finance_result(calc)
    csv_str = rg.export_schedule(result.finance.schedule, "schedule.csv")
    assert csv_str.splitlines()[0].startswith("number,payment_date")
    assert len(csv_str.strip().splitlines()) == 61
    assert "2024-09-01" in csv_str


# ── Policy summary and text ──────────────────────────────────────────


def test_policy_report(rg: ReportGenerator, store: JurisdictionPolicyStore):
    policies = store.all_policies(AS_OF)
    report = rg.policy_report(policies)
    codes = [j["code"] for j in report["jurisdictions"]]
    assert "MI" in codes
    df = rg.policies_dataframe(policies)
    assert len(df) == len(policies)
    assert df.loc[df["code"] == "MI", "state_rate"].iloc[0] == pytest.approx(0.06)


def test_format_text(rg: ReportGenerator, calc: DealCalculator):
    text = rg.format_text(rg.quote_report(_finance_result(calc)))
    assert "Deal Quote" in text
    assert "Total Tax: $750.00" in text
    assert "Combined Rate: 3.000%" in text
    assert "RECIPROCITY" in text
    assert "NC -> MI" in text
