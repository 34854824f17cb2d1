"""Tests for progressive bracket tables and standard deductions."""

import pytest

from errors import ConfigurationError
from tax_brackets import FilingStatus, StandardDeductionTable, TaxBracketSet

INDIVIDUAL = FilingStatus.INDIVIDUAL


def _federal_2023():
    brackets = TaxBracketSet(label="federal")
    for status in FilingStatus:
        brackets.add_rate(0, 11000, 0.10, status)
        brackets.add_rate(11001, 44725, 0.12, status)
        brackets.add_rate(44726, 95375, 0.22, status)
        brackets.add_rate(95376, None, 0.24, status)
    brackets.validate()
    return brackets


def test_progressive_tax_example():
    """11000 at 10%, 33724 at 12%, the remaining 41426 at 22%."""
    tax = _federal_2023().calculate_tax(86150, INDIVIDUAL)
    assert tax == pytest.approx(11000 * 0.10 + 33724 * 0.12 + 41426 * 0.22)
    assert tax == pytest.approx(14260.60)


def test_non_positive_income_owes_nothing():
    brackets = _federal_2023()
    assert brackets.calculate_tax(0, INDIVIDUAL) == 0
    assert brackets.calculate_tax(-500, INDIVIDUAL) == 0


def test_find_rate_and_brackets():
    brackets = _federal_2023()
    assert brackets.find_rate(50000, INDIVIDUAL) == 0.22
    assert brackets.find_rate(10**9, INDIVIDUAL) == 0.24
    assert brackets.find_bracket_with_income(11000, INDIVIDUAL).rate == 0.10
    assert brackets.find_bracket_with_rate(0.12, INDIVIDUAL).max == 44725


def test_unknown_rate_raises():
    with pytest.raises(ConfigurationError):
        _federal_2023().find_bracket_with_rate(0.5, INDIVIDUAL)


@pytest.mark.parametrize(
    "rows",
    [
        [(0, 100, 0.1), (200, None, 0.2)],  # gap
        [(0, 100, 0.1), (50, None, 0.2)],  # overlap
        [(0, 100, 0.1), (100, 200, 0.2)],  # no unbounded bracket
        [(10, None, 0.1)],  # does not start at zero
        [(0, None, 0.1), (100, None, 0.2)],  # two unbounded brackets
    ],
)
def test_malformed_tables_fail_validation(rows):
    brackets = TaxBracketSet()
    for status in FilingStatus:
        for lo, hi, rate in rows:
            brackets.add_rate(lo, hi, rate, status)
    with pytest.raises(ConfigurationError):
        brackets.validate()


def test_add_rate_rejects_bad_rows():
    brackets = TaxBracketSet()
    with pytest.raises(ConfigurationError):
        brackets.add_rate(100, 50, 0.1, INDIVIDUAL)
    with pytest.raises(ConfigurationError):
        brackets.add_rate(0, None, 1.5, INDIVIDUAL)


def test_inflation_keeps_previous_year():
    brackets = TaxBracketSet()
    for status in FilingStatus:
        brackets.add_rate(0, 10000, 0.10, status)
        brackets.add_rate(10000, None, 0.20, status)

    assert not brackets.has_previous()
    with pytest.raises(ValueError):
        brackets.find_prev_rate(5000, INDIVIDUAL)

    brackets.adjust_for_inflation(0.10)
    assert brackets.find_bracket_with_income(0, INDIVIDUAL).max == pytest.approx(11000)
    assert brackets.find_rate(10500, INDIVIDUAL) == 0.10
    assert brackets.find_prev_rate(10500, INDIVIDUAL) == 0.20
    assert brackets.calculate_prev_tax(20000, INDIVIDUAL) == pytest.approx(3000)


def test_clone_is_independent():
    original = _federal_2023()
    cloned = original.clone()
    cloned.adjust_for_inflation(0.5)
    assert original.find_bracket_with_income(0, INDIVIDUAL).max == 11000
    assert not original.has_previous()


def test_deduction_rounds_after_inflation():
    table = StandardDeductionTable()
    table.add_deduction(14600, INDIVIDUAL)
    table.adjust_for_inflation(0.031)
    assert table.find_deduction(INDIVIDUAL) == 15053
    assert table.find_prev_deduction(INDIVIDUAL) == 14600


def test_deduction_lookup_errors():
    table = StandardDeductionTable()
    table.add_deduction(14600, INDIVIDUAL)
    with pytest.raises(ConfigurationError):
        table.add_deduction(15000, INDIVIDUAL)
    with pytest.raises(ConfigurationError):
        table.find_deduction(FilingStatus.COUPLE)


def test_filing_status_aliases():
    assert FilingStatus.parse("single") is FilingStatus.INDIVIDUAL
    assert FilingStatus.parse("married") is FilingStatus.COUPLE
    with pytest.raises(ConfigurationError):
        FilingStatus.parse("widowed")
