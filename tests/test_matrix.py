"""Tests for the payment scenario matrix."""

from decimal import Decimal

import pytest

from autotax.matrix import generate_matrix
from autotax.settings import DEFAULT_MATRIX_TERMS


def test_default_terms():
    matrix = generate_matrix(Decimal("20000"), Decimal("6"))
    assert [s.term_months for s in matrix.scenarios] == list(DEFAULT_MATRIX_TERMS)


def test_sixty_month_scenario():
    matrix = generate_matrix(Decimal("20000"), Decimal("6"), terms=[60])
    (scenario,) = matrix.scenarios
    assert scenario.payment == Decimal("386.66")
    assert scenario.total_interest == Decimal("3199.60")
    assert scenario.total_cost == Decimal("23199.60")


def test_rate_variations_expand_grid():
    matrix = generate_matrix(
        Decimal("20000"),
        Decimal("6"),
        terms=[48, 60],
        rate_variations=[Decimal("-1"), Decimal("0"), Decimal("1")],
    )
    assert len(matrix) == 6
    assert [s.apr for s in matrix.for_term(60)] == [
        Decimal("5"),
        Decimal("6"),
        Decimal("7"),
    ]


def test_negative_rate_floors_at_zero():
    matrix = generate_matrix(
        Decimal("12000"), Decimal("1"), terms=[60], rate_variations=[Decimal("-3")]
    )
    (scenario,) = matrix.scenarios
    assert scenario.apr == Decimal("0")
    assert scenario.payment == Decimal("200.00")
    assert scenario.total_interest == Decimal("0")


def test_longer_term_lowers_payment_raises_cost():
    matrix = generate_matrix(Decimal("25000"), Decimal("7"), terms=[36, 72])
    short, long = matrix.scenarios
    assert long.payment < short.payment
    assert long.total_cost > short.total_cost
    assert matrix.lowest_payment() is long
    assert matrix.cheapest_total_cost() is short


def test_empty_terms():
    matrix = generate_matrix(Decimal("20000"), Decimal("6"), terms=[])
    assert len(matrix) == 0
    assert matrix.lowest_payment() is None
    assert matrix.cheapest_total_cost() is None


def test_invalid_term_rejected():
    with pytest.raises(ValueError, match="positive"):
        generate_matrix(Decimal("20000"), Decimal("6"), terms=[0])


def test_to_dataframe():
    df = generate_matrix(Decimal("20000"), Decimal("6"), terms=[48, 60]).to_dataframe()
    assert list(df.columns) == [
        "term_months",
        "apr",
        "payment",
        "total_interest",
        "total_cost",
    ]
    assert df["payment"].tolist()[1] == pytest.approx(386.66)
