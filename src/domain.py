import copy
import logging

from enum import Enum
from typing import Dict, Iterable, List, Optional

# Internal Imports
from errors import ConfigurationError
from value_source import Distribution, ValueSource


class TaxStatus(Enum):
    NON_RETIREMENT = "non-retirement"
    PRE_TAX = "pre-tax"
    AFTER_TAX = "after-tax"

    @classmethod
    def parse(cls, raw: str) -> "TaxStatus":
        try:
            return cls(str(raw).strip().lower().replace("_", "-"))
        except ValueError:
            raise ConfigurationError(f"unknown tax status '{raw}'") from None


class ChangeType(Enum):
    AMOUNT = "amount"
    PERCENT = "percent"

    @classmethod
    def parse(cls, raw: str) -> "ChangeType":
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"unknown change type '{raw}', expected 'amount' or 'percent'"
            ) from None

    def apply(self, base: float, change: float) -> float:
        """Return the delta `change` produces on `base`."""
        if self is ChangeType.PERCENT:
            return base * change
        return change


class InvestmentType:
    """
    Return and income generators shared by every holding of the type.
      - return_change_type / income_change_type: amount or percent of value
      - expense_ratio: annual fee charged on the average of start/end value
      - taxability: whether income in non-retirement accounts is taxable
    Annual values are drawn once per simulated year by resample_annual_values.
    """

    def __init__(
        self,
        name: str,
        return_change_type: ChangeType,
        return_distribution: Distribution,
        income_change_type: ChangeType,
        income_distribution: Distribution,
        expense_ratio: float = 0.0,
        taxability: bool = True,
        description: str = "",
    ):
        if expense_ratio < 0:
            raise ConfigurationError(
                f"investment type '{name}' has negative expense ratio {expense_ratio}"
            )
        self.name = name
        self.description = description
        self.return_change_type = return_change_type
        self.return_distribution = return_distribution
        self.income_change_type = income_change_type
        self.income_distribution = income_distribution
        self.expense_ratio = float(expense_ratio)
        self.taxability = bool(taxability)
        self.annual_return = 0.0
        self.annual_income = 0.0

    def resample_annual_values(self, source: ValueSource) -> None:
        self.annual_return = self.return_distribution.sample(source)
        self.annual_income = abs(self.income_distribution.sample(source))

    def annual_gain_on(self, value: float) -> float:
        return self.return_change_type.apply(value, self.annual_return)

    def annual_income_on(self, value: float) -> float:
        return self.income_change_type.apply(value, self.annual_income)

    def clone(self) -> "InvestmentType":
        return copy.deepcopy(self)


class InvestmentTypeManager:
    def __init__(self, types: Iterable[InvestmentType] = ()):
        self.types: Dict[str, InvestmentType] = {}
        for t in types:
            self.set(t)

    def get(self, name: str) -> InvestmentType:
        if name not in self.types:
            raise ConfigurationError(f"investment type '{name}' does not exist")
        return self.types[name]

    def has(self, name: str) -> bool:
        return name in self.types

    def set(self, investment_type: InvestmentType) -> None:
        self.types[investment_type.name] = investment_type

    def resample_all(self, source: ValueSource) -> None:
        # sorted so the draw order does not depend on insertion order
        for name in sorted(self.types):
            self.types[name].resample_annual_values(source)

    def clone(self) -> "InvestmentTypeManager":
        return InvestmentTypeManager(t.clone() for t in self.types.values())


class Investment:
    """
    A holding in one account bucket.
      - value:      current market value
      - cost_basis: after-tax principal, used for realized gains on sale
    """

    def __init__(
        self,
        id: str,
        investment_type: str,
        tax_status: TaxStatus,
        value: float = 0.0,
        cost_basis: Optional[float] = None,
    ):
        self.id = id
        self.investment_type = investment_type
        self.tax_status = tax_status
        self.value = float(value)
        # default cost_basis to the current value when not provided
        self.cost_basis = float(cost_basis) if cost_basis is not None else self.value

    def deposit(self, amount: float) -> None:
        self.value += amount
        self.cost_basis += amount

    def withdraw(self, amount: float) -> float:
        """
        Sell `amount` of value, reducing cost_basis pro rata.
        Returns the realized gain attributable to the sale.
        """
        if amount <= 0 or self.value <= 0:
            return 0.0
        fraction = amount / self.value
        gain = fraction * (self.value - self.cost_basis)
        self.cost_basis -= fraction * self.cost_basis
        self.value -= amount
        return gain

    def transfer(self, amount: float, target: "Investment") -> float:
        """Move `amount` of value and its share of cost basis into `target`."""
        if amount <= 0 or self.value <= 0:
            return 0.0
        amount = min(amount, self.value)
        fraction = amount / self.value
        basis_moved = fraction * self.cost_basis
        self.value -= amount
        self.cost_basis -= basis_moved
        target.value += amount
        target.cost_basis += basis_moved
        return amount

    def clone(self) -> "Investment":
        return Investment(
            self.id, self.investment_type, self.tax_status, self.value, self.cost_basis
        )

    def __repr__(self) -> str:
        return (
            f"Investment({self.id!r}, {self.tax_status.value}, "
            f"value={self.value:,.2f}, cost_basis={self.cost_basis:,.2f})"
        )


class AccountManager:
    """
    Partitions investments by tax status; every investment sits in exactly
    one bucket and in the `all` index. `cash` is the non-retirement holding
    whose id is "cash".
    """

    CASH_ID = "cash"

    def __init__(self, investments: Iterable[Investment] = ()):
        self.non_retirement: Dict[str, Investment] = {}
        self.pre_tax: Dict[str, Investment] = {}
        self.after_tax: Dict[str, Investment] = {}
        self.all: Dict[str, Investment] = {}
        self._cash_id: Optional[str] = None
        for inv in investments:
            self.add(inv)

    def bucket(self, status: TaxStatus) -> Dict[str, Investment]:
        if status is TaxStatus.NON_RETIREMENT:
            return self.non_retirement
        if status is TaxStatus.PRE_TAX:
            return self.pre_tax
        return self.after_tax

    def add(self, investment: Investment) -> None:
        if investment.id in self.all:
            raise ConfigurationError(f"investment '{investment.id}' defined twice")
        if investment.id.lower() == self.CASH_ID:
            if investment.tax_status is not TaxStatus.NON_RETIREMENT:
                raise ConfigurationError(
                    f"cash must be non-retirement, got {investment.tax_status.value}"
                )
            self._cash_id = investment.id
        self.bucket(investment.tax_status)[investment.id] = investment
        self.all[investment.id] = investment

    def has(self, investment_id: str) -> bool:
        return investment_id in self.all

    def find(self, investment_id: str) -> Optional[Investment]:
        return self.all.get(investment_id)

    def get(self, investment_id: str) -> Investment:
        if investment_id not in self.all:
            raise ConfigurationError(f"investment '{investment_id}' does not exist")
        return self.all[investment_id]

    @property
    def cash(self) -> Investment:
        if self._cash_id is None:
            raise ConfigurationError("no cash investment defined")
        return self.all[self._cash_id]

    def non_cash(self) -> List[Investment]:
        return [inv for inv in self.all.values() if inv.id != self._cash_id]

    def get_net_worth(self) -> float:
        # tied to contributed principal, not unrealized gains
        cash_value = self.cash.value if self._cash_id else 0.0
        return cash_value + sum(inv.cost_basis for inv in self.non_cash())

    def get_market_value(self) -> float:
        return sum(inv.value for inv in self.all.values())

    def get_total_value(self, status: TaxStatus) -> float:
        # zero/negative cost basis marks a placeholder holding
        return sum(
            inv.value for inv in self.bucket(status).values() if inv.cost_basis > 0
        )

    def get_total_non_retirement_value(self) -> float:
        return self.get_total_value(TaxStatus.NON_RETIREMENT)

    def get_total_pre_tax_value(self) -> float:
        return self.get_total_value(TaxStatus.PRE_TAX)

    def get_total_after_tax_value(self) -> float:
        return self.get_total_value(TaxStatus.AFTER_TAX)

    def clone(self) -> "AccountManager":
        return AccountManager(inv.clone() for inv in self.all.values())


class Person:
    def __init__(self, birth_year: int, life_expectancy: int):
        self.birth_year = int(birth_year)
        self.life_expectancy = int(life_expectancy)

    @property
    def death_year(self) -> int:
        return self.birth_year + self.life_expectancy

    def age(self, year: int) -> int:
        return year - self.birth_year

    def is_alive(self, year: int) -> bool:
        return year < self.death_year

    @classmethod
    def sample(
        cls, birth_year: int, life_expectancy: Distribution, source: ValueSource
    ) -> "Person":
        years = int(round(life_expectancy.sample(source)))
        if years <= 0:
            logging.warning(
                f"[Person] sampled life expectancy {years} for {birth_year}, using 1"
            )
            years = 1
        return cls(birth_year, years)
