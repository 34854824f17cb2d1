import logging

from typing import Any, Dict, List, Optional

# Internal Imports
from domain import (
    AccountManager,
    ChangeType,
    Investment,
    InvestmentType,
    InvestmentTypeManager,
    TaxStatus,
)
from errors import ConfigurationError
from events import EventSeries
from tax_brackets import FilingStatus
from value_source import Distribution


class Scenario:
    """
    Resolved scenario input. Built once before any trial starts; trials
    clone its managers and never mutate it.
    """

    def __init__(
        self,
        name: str,
        marital_status: FilingStatus,
        birth_years: List[int],
        life_expectancy: List[Distribution],
        investment_types: InvestmentTypeManager,
        accounts: AccountManager,
        event_series: List[EventSeries],
        inflation: Distribution,
        after_tax_contribution_limit: float,
        spending_strategy: List[str],
        expense_withdrawal_strategy: List[str],
        rmd_strategy: List[str],
        roth_conversion_opt: bool,
        roth_conversion_start: Optional[int],
        roth_conversion_end: Optional[int],
        roth_conversion_strategy: List[str],
        financial_goal: float,
        residence_state: str,
        start_year: int,
    ):
        self.name = name
        self.marital_status = marital_status
        self.birth_years = birth_years
        self.life_expectancy = life_expectancy
        self.investment_types = investment_types
        self.accounts = accounts
        self.event_series = event_series
        self.inflation = inflation
        self.after_tax_contribution_limit = float(after_tax_contribution_limit)
        self.spending_strategy = spending_strategy
        self.expense_withdrawal_strategy = expense_withdrawal_strategy
        self.rmd_strategy = rmd_strategy
        self.roth_conversion_opt = roth_conversion_opt
        self.roth_conversion_start = roth_conversion_start
        self.roth_conversion_end = roth_conversion_end
        self.roth_conversion_strategy = roth_conversion_strategy
        self.financial_goal = float(financial_goal)
        self.residence_state = residence_state
        self.start_year = int(start_year)
        self.validate()

    def _fail(self, field: str, message: str) -> None:
        logging.error(f"[Scenario] '{self.name}' {field}: {message}")
        raise ConfigurationError(f"scenario '{self.name}' {field}: {message}")

    def validate(self) -> None:
        people = 2 if self.marital_status is FilingStatus.COUPLE else 1
        if len(self.birth_years) != people or len(self.life_expectancy) != people:
            self._fail(
                "birthYears/lifeExpectancy",
                f"expected {people} entries for a {self.marital_status.value}",
            )

        for inv in self.accounts.all.values():
            if not self.investment_types.has(inv.investment_type):
                self._fail(
                    "investments", f"'{inv.id}' uses unknown type '{inv.investment_type}'"
                )

        for inv_id in self.expense_withdrawal_strategy:
            if not self.accounts.has(inv_id):
                self._fail("expenseWithdrawalStrategy", f"unknown investment '{inv_id}'")

        for field, strategy in (
            ("RMDStrategy", self.rmd_strategy),
            ("RothConversionStrategy", self.roth_conversion_strategy),
        ):
            for inv_id in strategy:
                if inv_id not in self.accounts.pre_tax:
                    self._fail(field, f"'{inv_id}' is not a pre-tax investment")

        discretionary = {
            s.name
            for s in self.event_series
            if s.kind == "expense" and s.fields.get("discretionary")
        }
        for name in self.spending_strategy:
            if name not in discretionary:
                self._fail(
                    "spendingStrategy", f"'{name}' is not a discretionary expense event"
                )

        if self.roth_conversion_opt:
            if self.roth_conversion_start is None or self.roth_conversion_end is None:
                self._fail("RothConversionStart/End", "required when Roth conversion is on")
            if self.roth_conversion_start > self.roth_conversion_end:
                self._fail("RothConversionStart", "starts after RothConversionEnd")

        if self.after_tax_contribution_limit < 0:
            self._fail("afterTaxContributionLimit", "is negative")

    @classmethod
    def from_config(cls, raw: Dict[str, Any]) -> "Scenario":
        name = raw.get("name", "scenario")
        try:
            parsed = _parse_components(raw)
        except ConfigurationError as exc:
            logging.error(f"[Scenario] '{name}': {exc}")
            raise ConfigurationError(f"scenario '{name}': {exc}") from exc
        if raw.get("startYear") is None:
            logging.error(f"[Scenario] '{name}' startYear: is required")
            raise ConfigurationError(f"scenario '{name}' startYear: is required")

        return cls(
            name=name,
            after_tax_contribution_limit=raw.get("afterTaxContributionLimit", 0),
            spending_strategy=list(raw.get("spendingStrategy", [])),
            expense_withdrawal_strategy=list(raw.get("expenseWithdrawalStrategy", [])),
            rmd_strategy=list(raw.get("RMDStrategy", [])),
            roth_conversion_opt=bool(raw.get("RothConversionOpt", False)),
            roth_conversion_start=raw.get("RothConversionStart"),
            roth_conversion_end=raw.get("RothConversionEnd"),
            roth_conversion_strategy=list(raw.get("RothConversionStrategy", [])),
            financial_goal=raw.get("financialGoal", 0),
            residence_state=str(raw.get("residenceState", "")).upper(),
            start_year=raw["startYear"],
            **parsed,
        )


def _parse_components(raw: Dict[str, Any]) -> Dict[str, Any]:
    types = InvestmentTypeManager(
        _parse_investment_type(t) for t in raw.get("investmentTypes", [])
    )
    accounts = AccountManager(_parse_investment(i) for i in raw.get("investments", []))
    if not any(inv_id.lower() == AccountManager.CASH_ID for inv_id in accounts.all):
        logging.warning("[Scenario] no cash investment, adding an empty one")
        accounts.add(Investment("cash", "cash", TaxStatus.NON_RETIREMENT, 0.0))
    cash_type = accounts.cash.investment_type
    if not types.has(cash_type):
        types.set(
            InvestmentType(
                cash_type,
                ChangeType.AMOUNT,
                Distribution.fixed(0),
                ChangeType.AMOUNT,
                Distribution.fixed(0),
                description="cash",
            )
        )

    return {
        "marital_status": FilingStatus.parse(raw.get("maritalStatus", "individual")),
        "birth_years": [int(y) for y in raw.get("birthYears", [])],
        "life_expectancy": [
            Distribution.from_config(d, field="lifeExpectancy")
            for d in raw.get("lifeExpectancy", [])
        ],
        "investment_types": types,
        "accounts": accounts,
        "event_series": [EventSeries.from_config(e) for e in raw.get("eventSeries", [])],
        "inflation": Distribution.from_config(
            raw.get("inflationAssumption", {"type": "fixed", "value": 0}),
            field="inflationAssumption",
        ),
    }


def _parse_investment_type(raw: Dict[str, Any]) -> InvestmentType:
    name = raw.get("name")
    if not name:
        raise ConfigurationError(f"investment type without a name: {raw!r}")
    return InvestmentType(
        name=name,
        description=raw.get("description", ""),
        return_change_type=ChangeType.parse(raw.get("returnAmtOrPct", "percent")),
        return_distribution=Distribution.from_config(
            raw.get("returnDistribution"), field=f"{name}.returnDistribution"
        ),
        income_change_type=ChangeType.parse(raw.get("incomeAmtOrPct", "percent")),
        income_distribution=Distribution.from_config(
            raw.get("incomeDistribution", {"type": "fixed", "value": 0}),
            field=f"{name}.incomeDistribution",
        ),
        expense_ratio=float(raw.get("expenseRatio", 0)),
        taxability=bool(raw.get("taxability", True)),
    )


def _parse_investment(raw: Dict[str, Any]) -> Investment:
    inv_id = raw.get("id")
    if not inv_id:
        raise ConfigurationError(f"investment without an id: {raw!r}")
    return Investment(
        id=inv_id,
        investment_type=raw.get("investmentType", ""),
        tax_status=TaxStatus.parse(raw.get("taxStatus", "non-retirement")),
        value=float(raw.get("value", 0)),
        cost_basis=raw.get("costBasis"),
    )
