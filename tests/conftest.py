import copy

import pytest

from scenario import Scenario
from simulation_state import SimulationState
from tax_brackets import FilingStatus, StandardDeductionTable, TaxBracketSet
from taxes import FederalTaxService, StateTaxService

START_YEAR = 2025

BASE_CONFIG = {
    "name": "test",
    "maritalStatus": "individual",
    "birthYears": [START_YEAR - 60],
    "lifeExpectancy": [{"type": "fixed", "value": 90}],
    "startYear": START_YEAR,
    "residenceState": "XX",
    "financialGoal": 0,
    "afterTaxContributionLimit": 7000,
    "inflationAssumption": {"type": "fixed", "value": 0},
    "investmentTypes": [
        {
            "name": "cash",
            "returnAmtOrPct": "amount",
            "returnDistribution": {"type": "fixed", "value": 0},
            "incomeAmtOrPct": "amount",
            "incomeDistribution": {"type": "fixed", "value": 0},
        },
        {
            "name": "stocks",
            "returnAmtOrPct": "percent",
            "returnDistribution": {"type": "fixed", "value": 0},
            "incomeAmtOrPct": "percent",
            "incomeDistribution": {"type": "fixed", "value": 0},
        },
    ],
    "investments": [
        {"id": "cash", "investmentType": "cash", "taxStatus": "non-retirement", "value": 10000}
    ],
    "eventSeries": [],
    "spendingStrategy": [],
    "expenseWithdrawalStrategy": [],
    "RMDStrategy": [],
    "RothConversionOpt": False,
    "RothConversionStrategy": [],
}


def expense(name, amount, discretionary=False, start=START_YEAR, duration=50, **extra):
    raw = {
        "name": name,
        "type": "expense",
        "start": {"type": "fixed", "value": start},
        "duration": {"type": "fixed", "value": duration},
        "initialAmount": amount,
        "changeAmtOrPct": "amount",
        "changeDistribution": {"type": "fixed", "value": 0},
        "inflationAdjusted": False,
        "userFraction": 1.0,
        "discretionary": discretionary,
    }
    raw.update(extra)
    return raw


def income(name, amount, start=START_YEAR, duration=50, **extra):
    raw = {
        "name": name,
        "type": "income",
        "start": {"type": "fixed", "value": start},
        "duration": {"type": "fixed", "value": duration},
        "initialAmount": amount,
        "changeAmtOrPct": "amount",
        "changeDistribution": {"type": "fixed", "value": 0},
        "inflationAdjusted": False,
        "userFraction": 1.0,
        "socialSecurity": False,
    }
    raw.update(extra)
    return raw


def allocation_event(name, kind, allocation, start=START_YEAR, duration=50, **extra):
    raw = {
        "name": name,
        "type": kind,
        "start": {"type": "fixed", "value": start},
        "duration": {"type": "fixed", "value": duration},
        "assetAllocation": allocation,
    }
    raw.update(extra)
    return raw


def holding(inv_id, status, value, cost_basis=None, inv_type="stocks"):
    raw = {"id": inv_id, "investmentType": inv_type, "taxStatus": status, "value": value}
    if cost_basis is not None:
        raw["costBasis"] = cost_basis
    return raw


def simple_brackets(label, lower_rate, upper_rate, split=10000):
    brackets = TaxBracketSet(label=label)
    for status in FilingStatus:
        brackets.add_rate(0, split, lower_rate, status)
        brackets.add_rate(split, None, upper_rate, status)
    return brackets


@pytest.fixture
def base_config():
    """Fresh copy of a one-person, cash-only scenario."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def federal_service():
    """10% to $10,000 then 20%; flat 15% gains; $1,000/$2,000 deductions."""
    gains = TaxBracketSet(label="gains")
    for status in FilingStatus:
        gains.add_rate(0, None, 0.15, status)
    deductions = StandardDeductionTable()
    deductions.add_deduction(1000, FilingStatus.INDIVIDUAL)
    deductions.add_deduction(2000, FilingStatus.COUPLE)
    service = FederalTaxService(simple_brackets("income", 0.10, 0.20), gains, deductions)
    service.validate()
    return service


@pytest.fixture
def state_service():
    """Flat 5% state income tax."""
    flat = TaxBracketSet(label="state")
    for status in FilingStatus:
        flat.add_rate(0, None, 0.05, status)
    return StateTaxService("XX", flat)


@pytest.fixture
def make_state(federal_service, state_service):
    """Build a SimulationState from a scenario config, set up for its first year."""

    def _make(config, seed="test-0", setup=True):
        scenario = Scenario.from_config(config)
        state = SimulationState(scenario, federal_service, state_service, seed)
        if setup:
            state.setup()
        return state

    return _make
