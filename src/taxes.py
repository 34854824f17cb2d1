import logging
import math

from enum import Enum
from typing import Dict, Optional

# Internal Imports
from errors import ConfigurationError, SimulationCorruptionError
from tax_brackets import FilingStatus, StandardDeductionTable, TaxBracket, TaxBracketSet


class IncomeType(Enum):
    TAXABLE_INCOME = "taxable_income"
    CAPITAL_GAINS = "capital_gains"


class FederalTaxService:
    """
    Federal ordinary-income brackets, capital-gains brackets and the
    standard deduction. Lookups dispatch on IncomeType.
    """

    def __init__(
        self,
        taxable_income: TaxBracketSet,
        capital_gains: TaxBracketSet,
        deductions: StandardDeductionTable,
    ):
        self.taxable_income = taxable_income
        self.capital_gains = capital_gains
        self.deductions = deductions

    def validate(self) -> None:
        self.taxable_income.validate()
        self.capital_gains.validate()
        for status in FilingStatus:
            self.deductions.find_deduction(status)

    def _brackets(self, income_type: IncomeType) -> TaxBracketSet:
        if income_type is IncomeType.TAXABLE_INCOME:
            return self.taxable_income
        if income_type is IncomeType.CAPITAL_GAINS:
            return self.capital_gains
        raise ConfigurationError(f"invalid income type {income_type!r}")

    def find_rate(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> float:
        return self._brackets(income_type).find_rate(income, status)

    def find_bracket_with_income(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> TaxBracket:
        return self._brackets(income_type).find_bracket_with_income(income, status)

    def find_bracket_with_rate(
        self, rate: float, income_type: IncomeType, status: FilingStatus
    ) -> TaxBracket:
        return self._brackets(income_type).find_bracket_with_rate(rate, status)

    def find_prev_rate(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> float:
        return self._brackets(income_type).find_prev_rate(income, status)

    def find_prev_bracket_with_income(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> TaxBracket:
        return self._brackets(income_type).find_prev_bracket_with_income(
            income, status
        )

    def find_prev_bracket_with_rate(
        self, rate: float, income_type: IncomeType, status: FilingStatus
    ) -> TaxBracket:
        return self._brackets(income_type).find_prev_bracket_with_rate(rate, status)

    def calculate_tax(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> float:
        return self._brackets(income_type).calculate_tax(income, status)

    def calculate_prev_tax(
        self, income: float, income_type: IncomeType, status: FilingStatus
    ) -> float:
        brackets = self._brackets(income_type)
        if brackets.has_previous():
            return brackets.calculate_prev_tax(income, status)
        return brackets.calculate_tax(income, status)

    def find_deduction(self, status: FilingStatus) -> float:
        return self.deductions.find_deduction(status)

    def find_prev_deduction(self, status: FilingStatus) -> float:
        if self.deductions.previous is None:
            return self.deductions.find_deduction(status)
        return self.deductions.find_prev_deduction(status)

    def adjust_for_inflation(self, rate: float) -> None:
        self.taxable_income.adjust_for_inflation(rate)
        self.capital_gains.adjust_for_inflation(rate)
        self.deductions.adjust_for_inflation(rate)

    def clone(self) -> "FederalTaxService":
        return FederalTaxService(
            taxable_income=self.taxable_income.clone(),
            capital_gains=self.capital_gains.clone(),
            deductions=self.deductions.clone(),
        )


class StateTaxService:
    def __init__(self, state: str, taxable_income: Optional[TaxBracketSet] = None):
        self.state = state
        if taxable_income is None:
            logging.warning(
                f"[StateTax] no bracket data for '{state}', using a zero-rate bracket"
            )
            taxable_income = TaxBracketSet(label=f"{state} state")
            for status in FilingStatus:
                taxable_income.add_rate(0, None, 0.0, status)
        self.taxable_income = taxable_income

    def validate(self) -> None:
        self.taxable_income.validate()

    def _brackets(self, income_type: IncomeType) -> TaxBracketSet:
        if income_type is IncomeType.TAXABLE_INCOME:
            return self.taxable_income
        raise ConfigurationError(
            f"state tax for '{self.state}' has no {income_type!r} brackets"
        )

    def find_rate(
        self,
        income: float,
        status: FilingStatus,
        income_type: IncomeType = IncomeType.TAXABLE_INCOME,
    ) -> float:
        return self._brackets(income_type).find_rate(income, status)

    def find_bracket_with_income(
        self,
        income: float,
        status: FilingStatus,
        income_type: IncomeType = IncomeType.TAXABLE_INCOME,
    ) -> TaxBracket:
        return self._brackets(income_type).find_bracket_with_income(income, status)

    def find_bracket_with_rate(
        self,
        rate: float,
        status: FilingStatus,
        income_type: IncomeType = IncomeType.TAXABLE_INCOME,
    ) -> TaxBracket:
        return self._brackets(income_type).find_bracket_with_rate(rate, status)

    def find_prev_rate(self, income: float, status: FilingStatus) -> float:
        return self.taxable_income.find_prev_rate(income, status)

    def find_prev_bracket_with_income(
        self, income: float, status: FilingStatus
    ) -> TaxBracket:
        return self.taxable_income.find_prev_bracket_with_income(income, status)

    def find_prev_bracket_with_rate(
        self, rate: float, status: FilingStatus
    ) -> TaxBracket:
        return self.taxable_income.find_prev_bracket_with_rate(rate, status)

    def calculate_tax(self, income: float, status: FilingStatus) -> float:
        return self.taxable_income.calculate_tax(income, status)

    def calculate_prev_tax(self, income: float, status: FilingStatus) -> float:
        if self.taxable_income.has_previous():
            return self.taxable_income.calculate_prev_tax(income, status)
        return self.taxable_income.calculate_tax(income, status)

    def adjust_for_inflation(self, rate: float) -> None:
        self.taxable_income.adjust_for_inflation(rate)

    def clone(self) -> "StateTaxService":
        return StateTaxService(self.state, self.taxable_income.clone())


class UserTaxData:
    """
    Current and previous-year tax accumulators.
      - income:                   ordinary income, social security included
      - capital_gains:            realized gains from non-retirement sales
      - social_security:          social security benefits
      - early_withdrawals:        pre/after-tax withdrawals before age 59
      - after_tax_contributions:  money moved into after-tax accounts
    """

    FIELDS = (
        "income",
        "capital_gains",
        "social_security",
        "early_withdrawals",
        "after_tax_contributions",
    )

    def __init__(self):
        self.current: Dict[str, float] = {f: 0.0 for f in self.FIELDS}
        self.previous: Dict[str, float] = {f: 0.0 for f in self.FIELDS}

    def _incr(self, field: str, amount: float) -> None:
        self.current[field] += amount
        if math.isnan(self.current[field]):
            logging.error(f"[UserTaxData] current {field} became NaN adding {amount}")
            raise SimulationCorruptionError(
                f"current-year {field} became NaN after adding {amount}"
            )

    def incr_income(self, amount: float) -> None:
        self._incr("income", amount)

    def incr_capital_gains(self, amount: float) -> None:
        self._incr("capital_gains", amount)

    def incr_social_security(self, amount: float) -> None:
        self._incr("social_security", amount)

    def incr_early_withdrawal(self, amount: float) -> None:
        self._incr("early_withdrawals", amount)

    def incr_after_tax_contribution(self, amount: float) -> None:
        self._incr("after_tax_contributions", amount)

    def get_cur(self, field: str) -> float:
        return self.current[field]

    def get_prev(self, field: str) -> float:
        return self.previous[field]

    def get_cur_fed_taxable_income(self) -> float:
        return self.current["income"] - 0.15 * self.current["social_security"]

    def get_prev_fed_taxable_income(self) -> float:
        return self.previous["income"] - 0.15 * self.previous["social_security"]

    def advance_year(self) -> None:
        self.previous = self.current
        self.current = {f: 0.0 for f in self.FIELDS}

    def clone(self) -> "UserTaxData":
        cloned = UserTaxData()
        cloned.current = dict(self.current)
        cloned.previous = dict(self.previous)
        return cloned


class TaxProcessor:
    """
    Computes the bill owed this year on last year's accumulated income.
    Uses last year's brackets when a snapshot exists.
    """

    PENALTY_RATE = 0.10

    def __init__(
        self,
        user_tax_data: UserTaxData,
        federal: FederalTaxService,
        state: StateTaxService,
    ):
        self.user_tax_data = user_tax_data
        self.federal = federal
        self.state = state

    def calculate_taxes(self, status: FilingStatus) -> Dict[str, float]:
        data = self.user_tax_data

        deduction = self.federal.find_prev_deduction(status)
        fed_taxable = max(0.0, data.get_prev_fed_taxable_income() - deduction)
        federal_tax = self.federal.calculate_prev_tax(
            fed_taxable, IncomeType.TAXABLE_INCOME, status
        )

        state_taxable = max(0.0, data.get_prev("income"))
        state_tax = self.state.calculate_prev_tax(state_taxable, status)

        # losses are neither refunded nor carried forward
        gains = max(0.0, data.get_prev("capital_gains"))
        capital_gains_tax = (
            self.federal.calculate_prev_tax(gains, IncomeType.CAPITAL_GAINS, status)
            if gains > 0
            else 0.0
        )

        penalty_tax = self.PENALTY_RATE * data.get_prev("early_withdrawals")
        total_tax = max(0.0, federal_tax + state_tax + capital_gains_tax + penalty_tax)

        breakdown = {
            "federal_taxable_income": fed_taxable,
            "federal_tax": federal_tax,
            "state_tax": state_tax,
            "capital_gains_tax": capital_gains_tax,
            "penalty_tax": penalty_tax,
            "total_tax": total_tax,
        }
        for key, value in breakdown.items():
            if math.isnan(value):
                logging.error(f"[TaxProcessor] {key} is NaN: {breakdown}")
                raise SimulationCorruptionError(f"tax computation produced NaN {key}")

        logging.debug(f"[TaxProcessor] {status.value} — {breakdown}")
        return breakdown
