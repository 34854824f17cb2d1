import logging
import pandas as pd

from dataclasses import dataclass
from typing import Dict, List, Optional

# Internal Imports
from audit import YearlyResultTracker
from simulation_state import SimulationState
from transactions import (
    DiscretionaryExpenseTransaction,
    IncomeTransaction,
    InvestExcessCashTransaction,
    MandatoryExpenseTransaction,
    MarketGainTransaction,
    RebalanceTransaction,
    RequiredMinimumDistributionTransaction,
    RothConversionTransaction,
    Transaction,
)


@dataclass
class TrialResult:
    seed: str
    records: pd.DataFrame
    completed: bool
    failed_year: Optional[int] = None
    shortfall: float = 0.0

    @property
    def years_simulated(self) -> int:
        return len(self.records)


class SimulationRunner:
    """
    Drives one trial year by year until the primary person dies or a year's
    mandatory expenses cannot be paid. A failed year is not recorded.
    """

    def __init__(
        self,
        state: SimulationState,
        rmd_table: Optional[Dict[int, float]] = None,
    ):
        self.state = state
        self.tracker = YearlyResultTracker()
        self.mandatory = MandatoryExpenseTransaction()
        self.pipeline: List[Transaction] = [
            IncomeTransaction(),
            RequiredMinimumDistributionTransaction(rmd_table),
            MarketGainTransaction(),
            RothConversionTransaction(),
            self.mandatory,
            DiscretionaryExpenseTransaction(),
            InvestExcessCashTransaction(),
            RebalanceTransaction(),
        ]

    def simulate_year(self) -> bool:
        self.state.setup()
        for stage in self.pipeline:
            if not stage.apply(self.state):
                return False
        self.tracker.record(self.state)
        return True

    def run(self) -> TrialResult:
        state = self.state
        while state.is_user_alive():
            if not self.simulate_year():
                logging.info(
                    f"[SimulationRunner] seed {state.seed} — failed in {state.current_year}, "
                    f"shortfall ${self.mandatory.shortfall:,.2f}"
                )
                return TrialResult(
                    seed=state.seed,
                    records=self.tracker.to_dataframe(),
                    completed=False,
                    failed_year=state.current_year,
                    shortfall=self.mandatory.shortfall,
                )
            state.advance_year()

        logging.debug(
            f"[SimulationRunner] seed {state.seed} — completed through {state.current_year - 1}"
        )
        return TrialResult(
            seed=state.seed, records=self.tracker.to_dataframe(), completed=True
        )
