"""Tests for strategy-ordered liquidation and its tax effects."""

import pytest

from domain import AccountManager, Investment, TaxStatus
from errors import ConfigurationError
from taxes import UserTaxData
from withdrawals import WithdrawalProcessor


def _processor(*investments, age=65):
    accounts = AccountManager(investments)
    data = UserTaxData()
    return WithdrawalProcessor(accounts, data, lambda: age), accounts, data


def test_strategy_order_fills_request():
    """$5,000 from cash, the remaining $2,000 from the pre-tax holding."""
    processor, accounts, data = _processor(
        Investment("cash", "cash", TaxStatus.NON_RETIREMENT, 5000),
        Investment("stock-pre", "stocks", TaxStatus.PRE_TAX, 10000),
    )
    withdrawn = processor.execute_withdrawal(["cash", "stock-pre"], 7000)

    assert withdrawn == pytest.approx(7000)
    assert accounts.get("cash").value == 0
    assert accounts.get("stock-pre").value == pytest.approx(8000)
    assert data.get_cur("income") == pytest.approx(2000)
    assert data.get_cur("capital_gains") == 0
    assert data.get_cur("early_withdrawals") == 0


def test_early_withdrawal_before_59():
    processor, _, data = _processor(
        Investment("ira", "stocks", TaxStatus.PRE_TAX, 10000),
        Investment("roth", "stocks", TaxStatus.AFTER_TAX, 10000),
        age=58,
    )
    processor.execute_withdrawal(["ira", "roth"], 12000)
    assert data.get_cur("early_withdrawals") == pytest.approx(12000)
    assert data.get_cur("income") == pytest.approx(10000)


def test_no_penalty_from_age_59():
    processor, _, data = _processor(
        Investment("ira", "stocks", TaxStatus.PRE_TAX, 10000), age=59
    )
    processor.execute_withdrawal(["ira"], 1000)
    assert data.get_cur("early_withdrawals") == 0


def test_capital_gains_only_from_non_retirement():
    processor, accounts, data = _processor(
        Investment("roth", "stocks", TaxStatus.AFTER_TAX, 1000, 500),
        Investment("brokerage", "stocks", TaxStatus.NON_RETIREMENT, 1000, 500),
    )
    processor.execute_withdrawal(["roth"], 500)
    assert data.get_cur("capital_gains") == 0
    assert accounts.get("roth").cost_basis == pytest.approx(250)

    processor.execute_withdrawal(["brokerage"], 500)
    assert data.get_cur("capital_gains") == pytest.approx(250)


def test_empty_or_zero_basis_holdings_skipped():
    processor, accounts, _ = _processor(
        Investment("empty", "stocks", TaxStatus.NON_RETIREMENT, 0),
        Investment("placeholder", "stocks", TaxStatus.NON_RETIREMENT, 500, 0),
        Investment("cash", "cash", TaxStatus.NON_RETIREMENT, 300),
    )
    withdrawn = processor.execute_withdrawal(["empty", "placeholder", "cash"], 1000)
    assert withdrawn == pytest.approx(300)
    assert accounts.get("placeholder").value == 500


def test_unknown_strategy_entry():
    processor, _, _ = _processor(Investment("cash", "cash", TaxStatus.NON_RETIREMENT, 300))
    with pytest.raises(ConfigurationError):
        processor.execute_withdrawal(["missing"], 100)


def test_max_basis_limits_cost_basis_sold():
    processor, accounts, data = _processor(
        Investment("loser", "stocks", TaxStatus.NON_RETIREMENT, 1000, 2000),
        Investment("winner", "stocks", TaxStatus.NON_RETIREMENT, 1000, 500),
    )
    withdrawn = processor.execute_withdrawal(["loser", "winner"], 1000, max_basis=1200)

    assert withdrawn == pytest.approx(600)
    assert accounts.get("loser").cost_basis == pytest.approx(800)
    assert accounts.get("winner").value == pytest.approx(1000)
    assert data.get_cur("capital_gains") == pytest.approx(-600)
