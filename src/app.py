import logging
import numpy as np
import pandas as pd
import time

from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import datetime
from tqdm import tqdm
from typing import Dict, List, Optional, Tuple

# Internal Imports
from forecast_engine import SimulationRunner, TrialResult
from load_data import build_tax_services, load_json, load_rmd_table
from scenario import Scenario
from simulation_state import SimulationState
from taxes import FederalTaxService, StateTaxService
from visualization import plot_mc_networth, plot_success_probability

# Simulation settings
SIM_SIZE = 100
SIM_EXAMPLE_SIZE = 1
BASE_SEED = "nest-egg"

# Visualization settings
SHOW_NETWORTH_CHART = True
SAVE_NETWORTH_CHART = False
SHOW_SUCCESS_CHART = True
SAVE_SUCCESS_CHART = False


@contextmanager
def timed(label):
    start = time.time()
    yield
    logging.info(
        f"{label} with {SIM_SIZE} trials completed in {(time.time() - start):.1f} seconds."
    )


def trial_seed(base_seed: str, trial: int) -> str:
    return f"{base_seed}-{trial}"


def run_one_trial(
    trial: int,
    scenario: Scenario,
    federal: FederalTaxService,
    state: StateTaxService,
    base_seed: str = BASE_SEED,
    rmd_table: Optional[Dict[int, float]] = None,
) -> Tuple[int, TrialResult]:
    """
    Runs one Monte Carlo trial from its own seed, returns (trial, result).
    """
    sim_state = SimulationState(scenario, federal, state, trial_seed(base_seed, trial))
    result = SimulationRunner(sim_state, rmd_table).run()
    return trial, result


def run_trials(
    scenario: Scenario,
    federal: FederalTaxService,
    state: StateTaxService,
    sim_size: int = SIM_SIZE,
    base_seed: str = BASE_SEED,
    rmd_table: Optional[Dict[int, float]] = None,
    max_workers: Optional[int] = None,
) -> Tuple[pd.DataFrame, List[TrialResult]]:
    """
    Run `sim_size` independent trials in worker processes. Returns all
    yearly records tagged with their Trial index plus the per-trial results,
    both ordered by trial index regardless of completion order.
    """
    results: Dict[int, TrialResult] = {}
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(
                run_one_trial, trial, scenario, federal, state, base_seed, rmd_table
            )
            for trial in range(sim_size)
        ]
        for future in tqdm(
            as_completed(futures),
            total=sim_size,
            desc="Running Monte Carlo Simulation",
        ):
            trial, result = future.result()
            results[trial] = result

    ordered = [results[trial] for trial in sorted(results)]
    frames = [
        result.records.assign(Trial=trial)
        for trial, result in zip(sorted(results), ordered)
        if not result.records.empty
    ]
    records_df = (
        pd.concat(frames, ignore_index=True).sort_values(["Trial", "Year"])
        if frames
        else pd.DataFrame(columns=["Trial", "Year"])
    )
    return records_df.reset_index(drop=True), ordered


def summarize_trials(records_df: pd.DataFrame, sim_size: int) -> pd.DataFrame:
    """
    Per-year success probability and net-worth percentiles. A trial with
    no record for a year (failed or deceased) counts as not meeting the goal.
    """
    if records_df.empty:
        return pd.DataFrame(
            columns=["Success Probability", "p15", "median", "p85"]
        ).rename_axis("Year")

    goal_met = records_df.pivot(index="Year", columns="Trial", values="Goal Met")
    success = goal_met.fillna(False).astype(bool).sum(axis=1) / sim_size

    networth = networth_by_trial(records_df)
    pct_df = networth.quantile([0.15, 0.5, 0.85], axis=1).T
    pct_df.columns = ["p15", "median", "p85"]

    summary = pd.concat([success.rename("Success Probability"), pct_df], axis=1)
    return summary.sort_index()


def networth_by_trial(records_df: pd.DataFrame) -> pd.DataFrame:
    return records_df.pivot(index="Year", columns="Trial", values="Net Worth").sort_index()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        filename="app.log",
    )
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")

    with timed("Simulation"):
        json_data = load_json()
        scenario = Scenario.from_config(json_data["scenario"])
        federal, state = build_tax_services(
            json_data["federal_tax"],
            json_data.get("state_tax"),
            scenario.residence_state,
        )
        rmd_table = load_rmd_table(json_data.get("rmd"))

        records_df, results = run_trials(
            scenario, federal, state, SIM_SIZE, BASE_SEED, rmd_table
        )

    failed = [r for r in results if not r.completed]
    logging.info(
        f"[Summary] {scenario.name}: {len(failed)} of {SIM_SIZE} trials ran out of money"
    )

    summary_df = summarize_trials(records_df, SIM_SIZE)
    if summary_df.empty:
        logging.warning("[Summary] no simulated years recorded")
        return

    rng = np.random.default_rng()
    sim_examples = np.sort(rng.choice(SIM_SIZE, size=SIM_EXAMPLE_SIZE, replace=False))
    plot_mc_networth(
        mc_networth_df=networth_by_trial(records_df),
        sim_examples=sim_examples,
        ts=ts,
        show=SHOW_NETWORTH_CHART,
        save=SAVE_NETWORTH_CHART,
    )
    plot_success_probability(
        summary_df=summary_df,
        sim_size=SIM_SIZE,
        ts=ts,
        show=SHOW_SUCCESS_CHART,
        save=SAVE_SUCCESS_CHART,
    )


if __name__ == "__main__":
    main()
