import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

# Internal Imports
from errors import ConfigurationError
from tax_brackets import FilingStatus, StandardDeductionTable, TaxBracketSet
from taxes import FederalTaxService, StateTaxService

BASE = Path(__file__).parent.parent
CONFIG = BASE / "config"

REQUIRED_FILES = ("scenario", "federal_tax")


def load_json(config_dir: Path = CONFIG) -> dict[str, dict]:
    files = {f.stem: json.loads(f.read_text()) for f in Path(config_dir).glob("*.json")}
    missing = [name for name in REQUIRED_FILES if name not in files]
    if missing:
        logging.error(
            f"Required: {', '.join(f'`{m}.json`' for m in missing)} in the `{config_dir}` directory."
        )
        raise ConfigurationError(f"missing config files: {', '.join(missing)}")

    return files


def _add_brackets(
    brackets: TaxBracketSet, rows: List[Dict[str, Any]], source: str
) -> TaxBracketSet:
    for row in rows:
        try:
            brackets.add_rate(
                float(row["min"]),
                row.get("max"),
                float(row["rate"]),
                FilingStatus.parse(row["taxpayer_status"]),
            )
        except KeyError as exc:
            logging.error(f"[LoadData] {source}: bracket row {row!r} is missing {exc}")
            raise ConfigurationError(f"{source}: bracket row missing {exc}") from None
    return brackets


def build_tax_services(
    federal_raw: Dict[str, Any],
    state_raw: Optional[Dict[str, Any]],
    state_code: str,
) -> tuple[FederalTaxService, StateTaxService]:
    """
    Build validated federal and state services from the tax JSON files.
    `max: null` marks the unbounded top bracket. A state missing from
    `state_raw` gets a zero-rate service.
    """
    taxable = _add_brackets(
        TaxBracketSet(label="federal income"),
        federal_raw.get("taxable_income", []),
        "federal_tax.taxable_income",
    )
    gains = _add_brackets(
        TaxBracketSet(label="federal capital gains"),
        federal_raw.get("capital_gains", []),
        "federal_tax.capital_gains",
    )
    deductions = StandardDeductionTable()
    for row in federal_raw.get("standard_deduction", []):
        deductions.add_deduction(
            float(row["amount"]), FilingStatus.parse(row["taxpayer_status"])
        )

    federal = FederalTaxService(taxable, gains, deductions)
    try:
        federal.validate()
    except ConfigurationError as exc:
        logging.error(f"[LoadData] federal tax data rejected: {exc}")
        raise

    state_rows = (state_raw or {}).get(state_code.upper())
    if state_rows is None:
        state = StateTaxService(state_code.upper())
    else:
        state = StateTaxService(
            state_code.upper(),
            _add_brackets(
                TaxBracketSet(label=f"{state_code.upper()} state"),
                state_rows,
                f"state_tax.{state_code.upper()}",
            ),
        )
    try:
        state.validate()
    except ConfigurationError as exc:
        logging.error(f"[LoadData] state tax data for {state_code} rejected: {exc}")
        raise

    return federal, state


def load_rmd_table(raw: Optional[Dict[str, Any]]) -> Optional[Dict[int, float]]:
    """Uniform Lifetime divisors keyed by age, or None for the built-in table."""
    if not raw:
        return None
    try:
        return {int(age): float(divisor) for age, divisor in raw.items()}
    except (TypeError, ValueError) as exc:
        logging.error(f"[LoadData] rmd table rejected: {exc}")
        raise ConfigurationError(f"rmd table: {exc}") from None
