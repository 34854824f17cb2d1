"""Tests for holdings, account buckets and people."""

import pytest

from domain import (
    AccountManager,
    ChangeType,
    Investment,
    InvestmentType,
    InvestmentTypeManager,
    Person,
    TaxStatus,
)
from errors import ConfigurationError
from value_source import Distribution, ValueSource


def _accounts():
    return AccountManager(
        [
            Investment("cash", "cash", TaxStatus.NON_RETIREMENT, 1000),
            Investment("stocks", "stocks", TaxStatus.NON_RETIREMENT, 5000, 3000),
            Investment("ira", "stocks", TaxStatus.PRE_TAX, 8000),
            Investment("roth", "stocks", TaxStatus.AFTER_TAX, 2000, 0),
        ]
    )


def test_withdraw_realizes_proportional_gain():
    inv = Investment("stocks", "stocks", TaxStatus.NON_RETIREMENT, 1000, 600)
    gain = inv.withdraw(250)
    assert gain == pytest.approx(100)
    assert inv.value == pytest.approx(750)
    assert inv.cost_basis == pytest.approx(450)


def test_deposit_adds_to_basis():
    inv = Investment("stocks", "stocks", TaxStatus.NON_RETIREMENT, 1000, 600)
    inv.deposit(400)
    assert (inv.value, inv.cost_basis) == (1400, 1000)


def test_transfer_moves_basis():
    source = Investment("ira pre-tax", "stocks", TaxStatus.PRE_TAX, 1000, 500)
    target = Investment("ira after-tax", "stocks", TaxStatus.AFTER_TAX, 0, 0)
    moved = source.transfer(2000, target)
    assert moved == 1000
    assert (source.value, source.cost_basis) == (0, 0)
    assert (target.value, target.cost_basis) == (1000, 500)


def test_cost_basis_defaults_to_value():
    assert Investment("x", "stocks", TaxStatus.PRE_TAX, 700).cost_basis == 700


def test_buckets_partition_holdings():
    accounts = _accounts()
    assert set(accounts.non_retirement) == {"cash", "stocks"}
    assert set(accounts.pre_tax) == {"ira"}
    assert set(accounts.after_tax) == {"roth"}
    assert len(accounts.all) == 4


def test_cash_lookup_is_case_insensitive():
    accounts = AccountManager([Investment("Cash", "cash", TaxStatus.NON_RETIREMENT, 5)])
    assert accounts.cash.id == "Cash"


def test_cash_must_be_non_retirement():
    with pytest.raises(ConfigurationError):
        AccountManager([Investment("cash", "cash", TaxStatus.PRE_TAX, 5)])


def test_duplicate_and_unknown_ids():
    accounts = _accounts()
    with pytest.raises(ConfigurationError):
        accounts.add(Investment("ira", "stocks", TaxStatus.PRE_TAX, 1))
    with pytest.raises(ConfigurationError):
        accounts.get("missing")


def test_net_worth_uses_cost_basis():
    """Cash value plus the cost basis of every other holding."""
    assert _accounts().get_net_worth() == pytest.approx(1000 + 3000 + 8000 + 0)


def test_totals_skip_zero_basis_holdings():
    accounts = _accounts()
    assert accounts.get_total_pre_tax_value() == 8000
    assert accounts.get_total_after_tax_value() == 0
    assert accounts.get_total_non_retirement_value() == 6000


def test_clone_isolation():
    accounts = _accounts()
    cloned = accounts.clone()
    cloned.get("ira").withdraw(8000)
    cloned.cash.deposit(8000)
    assert accounts.get("ira").value == 8000
    assert accounts.cash.value == 1000


def test_investment_type_clone_isolation():
    manager = InvestmentTypeManager(
        [
            InvestmentType(
                "stocks",
                ChangeType.PERCENT,
                Distribution.fixed(0.07),
                ChangeType.PERCENT,
                Distribution.fixed(0.01),
                expense_ratio=0.001,
            )
        ]
    )
    cloned = manager.clone()
    stocks = cloned.get("stocks")
    stocks.return_distribution.params["value"] = -0.5
    stocks.expense_ratio = 0.02
    cloned.resample_all(ValueSource("x"))

    original = manager.get("stocks")
    assert stocks.annual_return == pytest.approx(-0.5)
    assert original.annual_return == 0.0
    assert original.return_distribution.params["value"] == pytest.approx(0.07)
    assert original.expense_ratio == pytest.approx(0.001)


def test_change_type_apply():
    assert ChangeType.PERCENT.apply(200, 0.05) == pytest.approx(10)
    assert ChangeType.AMOUNT.apply(200, 15) == 15
    with pytest.raises(ConfigurationError):
        ChangeType.parse("ratio")


def test_investment_type_resample():
    inv_type = InvestmentType(
        "bonds",
        ChangeType.PERCENT,
        Distribution.fixed(0.04),
        ChangeType.PERCENT,
        Distribution.fixed(-0.02),
    )
    manager = InvestmentTypeManager([inv_type])
    manager.resample_all(ValueSource("x"))
    assert inv_type.annual_gain_on(1000) == pytest.approx(40)
    # income is never negative
    assert inv_type.annual_income_on(1000) == pytest.approx(20)
    with pytest.raises(ConfigurationError):
        manager.get("gold")


def test_person_lifespan():
    person = Person(1960, 65)
    assert person.age(2024) == 64
    assert person.is_alive(2024)
    assert not person.is_alive(2025)


def test_sampled_life_expectancy_is_rounded():
    person = Person.sample(1960, Distribution.fixed(84.6), ValueSource("x"))
    assert person.life_expectancy == 85


def test_tax_status_parse():
    assert TaxStatus.parse("pre_tax") is TaxStatus.PRE_TAX
    with pytest.raises(ConfigurationError):
        TaxStatus.parse("roth")


def test_find_returns_none_for_unknown_ids():
    accounts = _accounts()
    assert accounts.find("ira") is accounts.get("ira")
    assert accounts.find("missing") is None
