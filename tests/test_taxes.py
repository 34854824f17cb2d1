"""Tests for the federal/state services, the accumulators and the yearly bill."""

import math

import pytest

from errors import ConfigurationError, SimulationCorruptionError
from tax_brackets import FilingStatus
from taxes import IncomeType, StateTaxService, TaxProcessor, UserTaxData

INDIVIDUAL = FilingStatus.INDIVIDUAL


def _last_year(**amounts):
    data = UserTaxData()
    data.incr_income(amounts.get("income", 0))
    data.incr_social_security(amounts.get("social_security", 0))
    data.incr_capital_gains(amounts.get("capital_gains", 0))
    data.incr_early_withdrawal(amounts.get("early_withdrawals", 0))
    data.advance_year()
    return data


def test_bill_uses_previous_year(federal_service, state_service):
    """Federal base is income less 15% of social security less the deduction."""
    data = _last_year(
        income=21000, social_security=10000, capital_gains=2000, early_withdrawals=3000
    )
    taxes = TaxProcessor(data, federal_service, state_service).calculate_taxes(INDIVIDUAL)

    assert taxes["federal_taxable_income"] == pytest.approx(18500)
    assert taxes["federal_tax"] == pytest.approx(10000 * 0.10 + 8500 * 0.20)
    assert taxes["state_tax"] == pytest.approx(21000 * 0.05)
    assert taxes["capital_gains_tax"] == pytest.approx(300)
    assert taxes["penalty_tax"] == pytest.approx(300)
    assert taxes["total_tax"] == pytest.approx(2700 + 1050 + 300 + 300)


def test_current_year_activity_is_not_taxed_yet(federal_service, state_service):
    data = UserTaxData()
    data.incr_income(50000)
    taxes = TaxProcessor(data, federal_service, state_service).calculate_taxes(INDIVIDUAL)
    assert taxes["total_tax"] == 0


def test_capital_losses_are_not_refunded(federal_service, state_service):
    data = _last_year(capital_gains=-5000)
    taxes = TaxProcessor(data, federal_service, state_service).calculate_taxes(INDIVIDUAL)
    assert taxes["capital_gains_tax"] == 0
    assert taxes["total_tax"] == 0


def test_previous_brackets_apply_after_inflation(federal_service, state_service):
    data = _last_year(income=11000)
    federal_service.adjust_for_inflation(1.0)
    state_service.adjust_for_inflation(1.0)
    taxes = TaxProcessor(data, federal_service, state_service).calculate_taxes(INDIVIDUAL)
    # last year's $1,000 deduction and $10,000 split, not the doubled ones
    assert taxes["federal_tax"] == pytest.approx(1000)


def test_couple_deduction(federal_service, state_service):
    data = _last_year(income=12000)
    taxes = TaxProcessor(data, federal_service, state_service).calculate_taxes(
        FilingStatus.COUPLE
    )
    assert taxes["federal_taxable_income"] == pytest.approx(10000)


def test_federal_dispatch_by_income_type(federal_service):
    assert federal_service.find_rate(5000, IncomeType.CAPITAL_GAINS, INDIVIDUAL) == 0.15
    assert federal_service.find_rate(5000, IncomeType.TAXABLE_INCOME, INDIVIDUAL) == 0.10
    bracket = federal_service.find_bracket_with_rate(0.20, IncomeType.TAXABLE_INCOME, INDIVIDUAL)
    assert math.isinf(bracket.max)


def test_state_without_data_is_zero_rate(caplog):
    service = StateTaxService("ZZ")
    assert "ZZ" in caplog.text
    assert service.calculate_tax(250000, INDIVIDUAL) == 0


def test_state_has_no_capital_gains_brackets(state_service):
    with pytest.raises(ConfigurationError):
        state_service.find_rate(1000, INDIVIDUAL, IncomeType.CAPITAL_GAINS)


def test_advance_year_rolls_accumulators():
    data = UserTaxData()
    data.incr_income(100)
    data.incr_after_tax_contribution(40)
    data.advance_year()
    assert data.get_prev("income") == 100
    assert data.get_prev("after_tax_contributions") == 40
    assert data.get_cur("income") == 0


def test_nan_increment_is_corruption():
    data = UserTaxData()
    with pytest.raises(SimulationCorruptionError):
        data.incr_capital_gains(float("nan"))
