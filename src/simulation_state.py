import logging

from typing import Any, Dict, Optional

# Internal Imports
from domain import Person
from errors import ConfigurationError
from events import CashFlowEvent, EventManager
from scenario import Scenario
from tax_brackets import FilingStatus
from taxes import FederalTaxService, StateTaxService, TaxProcessor, UserTaxData
from value_source import ValueSource
from withdrawals import WithdrawalProcessor


class SimulationState:
    """
    Mutable world of one trial. Every manager is cloned from the scenario
    or the loaded tax services, so trials never share mutable state.

    Draw order from the seeded source: life expectancies, event
    start/duration, then per year inflation, investment types and event
    amount changes.
    """

    def __init__(
        self,
        scenario: Scenario,
        federal_tax_service: FederalTaxService,
        state_tax_service: StateTaxService,
        seed: Any,
    ):
        self.scenario = scenario
        self.seed = str(seed)
        self.source = ValueSource(self.seed)

        self.current_year = scenario.start_year
        self.inflation_rate = 0.0
        self.inflation_factor = 1.0

        self.user = Person.sample(
            scenario.birth_years[0], scenario.life_expectancy[0], self.source
        )
        self.spouse: Optional[Person] = None
        if scenario.marital_status is FilingStatus.COUPLE:
            self.spouse = Person.sample(
                scenario.birth_years[1], scenario.life_expectancy[1], self.source
            )
        self.filing_status = scenario.marital_status

        self.account_manager = scenario.accounts.clone()
        self.investment_type_manager = scenario.investment_types.clone()
        self.event_manager = EventManager.from_series(
            scenario.event_series,
            self.source,
            status_of=lambda inv_id: self.account_manager.get(inv_id).tax_status,
        )
        self.federal_tax_service = federal_tax_service.clone()
        self.state_tax_service = state_tax_service.clone()
        self.user_tax_data = UserTaxData()
        self.tax_processor = TaxProcessor(
            self.user_tax_data, self.federal_tax_service, self.state_tax_service
        )
        self.withdrawal_processor = WithdrawalProcessor(
            self.account_manager, self.user_tax_data, self.get_age
        )

        # strategies are copied: Roth conversion may append new holdings
        self.spending_strategy = list(scenario.spending_strategy)
        self.expense_withdrawal_strategy = list(scenario.expense_withdrawal_strategy)
        self.rmd_strategy = list(scenario.rmd_strategy)
        self.roth_conversion_strategy = list(scenario.roth_conversion_strategy)
        self.roth_conversion_opt = scenario.roth_conversion_opt
        self.roth_conversion_start = scenario.roth_conversion_start
        self.roth_conversion_end = scenario.roth_conversion_end
        self.after_tax_contribution_limit = scenario.after_tax_contribution_limit
        self.financial_goal = scenario.financial_goal

        self.taxes_due: Dict[str, float] = {"total_tax": 0.0}
        self.year_flows: Dict[str, float] = {}

    def get_age(self) -> int:
        return self.user.age(self.current_year)

    def get_tax_filing_status(self) -> FilingStatus:
        return self.filing_status

    def get_financial_goal(self) -> float:
        return self.financial_goal

    def is_user_alive(self) -> bool:
        return self.user.is_alive(self.current_year)

    def is_spouse_alive(self) -> bool:
        return self.spouse is not None and self.spouse.is_alive(self.current_year)

    def survivor_amount(self, event: CashFlowEvent, amount: float) -> float:
        """Scale a couple's cash flow down to the user's share once widowed."""
        if self.spouse is not None and not self.is_spouse_alive():
            return amount * event.user_fraction
        return amount

    def add_flow(self, key: str, amount: float) -> None:
        self.year_flows[key] = self.year_flows.get(key, 0.0) + amount

    def setup(self) -> None:
        rate = self.scenario.inflation.sample(self.source)
        if rate <= -1:
            raise ConfigurationError(f"inflationAssumption sampled {rate}, below -100%")
        self.inflation_rate = rate
        self.inflation_factor *= 1 + rate

        self.investment_type_manager.resample_all(self.source)

        if self.spouse is not None and not self.is_spouse_alive():
            if self.filing_status is FilingStatus.COUPLE:
                logging.debug(
                    f"[SimulationState] {self.current_year} — spouse deceased, filing individually"
                )
            self.filing_status = FilingStatus.INDIVIDUAL

        self.event_manager.reset_year_totals()
        self.year_flows = {}

        self.taxes_due = self.tax_processor.calculate_taxes(self.filing_status)
        logging.debug(
            f"[SimulationState] {self.current_year} — inflation {rate:.4f}, "
            f"tax due ${self.taxes_due['total_tax']:,.2f}"
        )

    def advance_year(self) -> None:
        self.user_tax_data.advance_year()
        self.federal_tax_service.adjust_for_inflation(self.inflation_rate)
        self.state_tax_service.adjust_for_inflation(self.inflation_rate)
        self.current_year += 1

    def process_investment_withdrawal(
        self, amount: float, max_basis: Optional[float] = None
    ) -> float:
        return self.withdrawal_processor.execute_withdrawal(
            self.expense_withdrawal_strategy, amount, max_basis
        )
