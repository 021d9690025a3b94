"""Tests for the command-line interface."""

import json

import pytest

from autotax.cli import build_parser, main


def _deal_file(tmp_path, **overrides) -> str:
    record = {
        "deal_id": "CLI-1",
        "deal_type": "FINANCE",
        "jurisdiction_code": "MI",
        "msrp": "32000",
        "selling_price": "30000",
        "deal_date": "2024-08-01",
        "trade_in": {"allowance": "15000", "payoff": "4000"},
        "finance_terms": {"apr": "6", "term_months": 60},
    }
    record.update(overrides)
    path = tmp_path / "deal.json"
    path.write_text(json.dumps(record), encoding="utf-8")
    return str(path)


# ── Parser ───────────────────────────────────────────────────────────


def test_parser_subcommands():
    parser = build_parser()
    args = parser.parse_args(["tax", "--state", "MI", "--price", "30000"])
    assert args.command == "tax"
    assert args.type == "CASH"
    args = parser.parse_args(["tax", "-s", "MI", "--price", "1", "--type", "finance"])
    assert args.type == "FINANCE"


def test_money_factor_options_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["money-factor", "--mf", "0.001", "--apr", "2.4"])


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 0
    assert "autotax" in capsys.readouterr().out


# ── Commands ─────────────────────────────────────────────────────────


def test_tax_command(capsys):
    main(["tax", "--state", "MI", "--price", "30000", "--trade", "15000"])
    out = capsys.readouterr().out
    assert "Tax Calculation" in out
    assert "$1,140.00" in out


def test_tax_command_vehicle_class(capsys):
    main(["tax", "--state", "WV", "--price", "30000", "--vehicle-class", "RV"])
    assert "$1,800.00" in capsys.readouterr().out


def test_tax_command_unknown_state(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["tax", "--state", "ZZ", "--price", "30000"])
    assert exc.value.code == 1
    assert "Unknown jurisdiction code: ZZ" in capsys.readouterr().out


def test_matrix_command(capsys, tmp_path):
    main(
        [
            "matrix",
            "--amount", "20000",
            "--apr", "6",
            "--terms", "48,60",
            "--export-csv", "matrix.csv",
            "--output-dir", str(tmp_path),
        ]
    )
    out = capsys.readouterr().out
    assert "$386.66" in out
    assert (tmp_path / "matrix.csv").exists()


def test_policy_command(capsys):
    main(["policy", "--state", "MI"])
    out = capsys.readouterr().out
    assert "Michigan" in out
    assert "CAPPED" in out


def test_policy_list_command(capsys):
    main(["policy"])
    assert "Jurisdiction Policies" in capsys.readouterr().out


def test_local_rate_command(capsys):
    main(["local-rate", "--postal", "90001", "--state", "CA"])
    out = capsys.readouterr().out
    assert "exact" in out
    assert "LACMTA" in out


def test_money_factor_command(capsys):
    main(["money-factor", "--mf", "0.00125"])
    assert "3.000% APR" in capsys.readouterr().out
    main(["money-factor", "--apr", "3"])
    assert "0.001250" in capsys.readouterr().out


def test_quote_command(capsys, tmp_path):
    path = _deal_file(tmp_path)
    main(
        [
            "quote",
            "--file", path,
            "--export-json", "quote.json",
            "--schedule-csv", "schedule.csv",
            "--output-dir", str(tmp_path),
        ]
    )
    out = capsys.readouterr().out
    assert "Deal Quote" in out
    assert "$1,140.00" in out
    data = json.loads((tmp_path / "quote.json").read_text(encoding="utf-8"))
    assert data["summary"]["total_tax"] == 1140.0
    assert (tmp_path / "schedule.csv").exists()


def test_quote_command_invalid_deal(capsys, tmp_path):
    path = _deal_file(tmp_path, selling_price="0")
    with pytest.raises(SystemExit) as exc:
        main(["quote", "--file", path])
    assert exc.value.code == 1
    assert "Validation Errors" in capsys.readouterr().out


def test_quote_command_missing_terms(capsys, tmp_path):
    path = _deal_file(tmp_path, finance_terms=None)
    with pytest.raises(SystemExit) as exc:
        main(["quote", "--file", path])
    assert exc.value.code == 1
    assert "MissingTerms" in capsys.readouterr().out


def test_quote_command_missing_file(capsys, tmp_path):
    with pytest.raises(SystemExit):
        main(["quote", "--file", str(tmp_path / "nope.json")])
    assert "File not found" in capsys.readouterr().out


def test_custom_policy_file(capsys, tmp_path):
    path = tmp_path / "policies.yaml"
    path.write_text(
        "version: custom\n"
        "jurisdictions:\n"
        "  - code: ZZ\n"
        "    name: Testland\n"
        "    state_rate: 0.05\n"
        "    vehicle_tax_scheme: STATE_ONLY\n"
        "    trade_in: {type: FULL}\n",
        encoding="utf-8",
    )
    main(["--policies", str(path), "tax", "--state", "ZZ", "--price", "10000"])
    assert "$500.00" in capsys.readouterr().out
