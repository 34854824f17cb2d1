import copy
import logging
import math

from enum import Enum
from typing import Dict, List, Optional

# Internal Imports
from errors import ConfigurationError


class FilingStatus(Enum):
    INDIVIDUAL = "individual"
    COUPLE = "couple"

    @classmethod
    def parse(cls, raw: str) -> "FilingStatus":
        aliases = {
            "individual": cls.INDIVIDUAL,
            "single": cls.INDIVIDUAL,
            "couple": cls.COUPLE,
            "married": cls.COUPLE,
            "married_joint": cls.COUPLE,
        }
        try:
            return aliases[str(raw).strip().lower()]
        except KeyError:
            raise ConfigurationError(f"unknown taxpayer status '{raw}'") from None


class TaxBracket:
    def __init__(self, min_income: float, max_income: float, rate: float):
        self.min = float(min_income)
        self.max = float(max_income)
        self.rate = float(rate)

    @property
    def width(self) -> float:
        return self.max - self.min

    def covers(self, income: float) -> bool:
        return self.min <= income <= self.max

    def __repr__(self) -> str:
        return f"TaxBracket({self.min:,.0f}–{self.max:,.0f} @ {self.rate})"


class TaxBracketSet:
    """
    Progressive brackets per filing status, kept sorted by lower bound.

    Each status must partition [0, inf) with a single unbounded terminal
    bracket. Whole-dollar tables like (0, 11000) then (11001, 44725) are
    contiguous: a step of at most one dollar between bounds is not a gap.

    adjust_for_inflation keeps the pre-adjustment set for one year so the
    tax on last year's income can be computed on last year's brackets.
    """

    MAX_STEP = 1.0

    def __init__(self, label: str = "brackets"):
        self.label = label
        self.brackets: Dict[FilingStatus, List[TaxBracket]] = {
            status: [] for status in FilingStatus
        }
        self.previous: Optional["TaxBracketSet"] = None

    def add_rate(
        self,
        min_income: float,
        max_income: Optional[float],
        rate: float,
        status: FilingStatus,
    ) -> None:
        upper = math.inf if max_income is None else float(max_income)
        if min_income < 0:
            raise ConfigurationError(
                f"[{self.label}] bracket lower bound {min_income} is negative"
            )
        if min_income >= upper:
            raise ConfigurationError(
                f"[{self.label}] bracket lower bound {min_income} is not below upper bound {upper}"
            )
        if not 0 <= rate <= 1:
            raise ConfigurationError(f"[{self.label}] bracket rate {rate} not in [0, 1]")

        bucket = self.brackets[status]
        bucket.append(TaxBracket(min_income, upper, rate))
        bucket.sort(key=lambda b: b.min)

    def validate(self) -> None:
        for status, bucket in self.brackets.items():
            if not bucket:
                raise ConfigurationError(
                    f"[{self.label}] no brackets for {status.value} filers"
                )
            if bucket[0].min != 0:
                raise ConfigurationError(
                    f"[{self.label}] {status.value} brackets start at {bucket[0].min}, not 0"
                )
            for prev, nxt in zip(bucket, bucket[1:]):
                if math.isinf(prev.max):
                    raise ConfigurationError(
                        f"[{self.label}] {status.value} has an unbounded bracket before {nxt}"
                    )
                step = nxt.min - prev.max
                if step < 0:
                    raise ConfigurationError(
                        f"[{self.label}] {status.value} brackets {prev} and {nxt} overlap"
                    )
                if step > self.MAX_STEP:
                    raise ConfigurationError(
                        f"[{self.label}] {status.value} gap between {prev} and {nxt}"
                    )
            if not math.isinf(bucket[-1].max):
                raise ConfigurationError(
                    f"[{self.label}] {status.value} brackets stop at {bucket[-1].max:,.0f}"
                )

    def _bucket(self, status: FilingStatus) -> List[TaxBracket]:
        bucket = self.brackets.get(status)
        if not bucket:
            raise ConfigurationError(f"[{self.label}] no brackets for {status}")
        return bucket

    def find_bracket_with_income(
        self, income: float, status: FilingStatus
    ) -> TaxBracket:
        income = max(0.0, income)
        for bracket in self._bucket(status):
            if income <= bracket.max:
                return bracket
        raise ConfigurationError(
            f"[{self.label}] no {status.value} bracket covers income {income:,.2f}"
        )

    def find_rate(self, income: float, status: FilingStatus) -> float:
        return self.find_bracket_with_income(income, status).rate

    def find_bracket_with_rate(self, rate: float, status: FilingStatus) -> TaxBracket:
        for bracket in self._bucket(status):
            if math.isclose(bracket.rate, rate, abs_tol=1e-9):
                return bracket
        raise ConfigurationError(
            f"[{self.label}] no {status.value} bracket with rate {rate}"
        )

    def calculate_tax(self, income: float, status: FilingStatus) -> float:
        tax = 0.0
        remaining = max(0.0, income)
        for i, bracket in enumerate(self._bucket(status)):
            if remaining <= 0:
                break
            taxable_chunk = min(remaining, bracket.width)
            logging.debug(
                f"[{self.label}] bracket {i}: {bracket.min:,.0f}–{bracket.max:,.0f} "
                f"at {bracket.rate}, taxable_chunk={taxable_chunk:,.2f}"
            )
            tax += taxable_chunk * bracket.rate
            remaining -= taxable_chunk
        return tax

    def adjust_for_inflation(self, rate: float) -> None:
        snapshot = self._copy_brackets()
        for bucket in self.brackets.values():
            for bracket in bucket:
                bracket.min *= 1 + rate
                if not math.isinf(bracket.max):
                    bracket.max *= 1 + rate
        self.previous = snapshot

    def _require_previous(self) -> "TaxBracketSet":
        if self.previous is None:
            raise ValueError(f"[{self.label}] no previous-year brackets yet")
        return self.previous

    def has_previous(self) -> bool:
        return self.previous is not None

    def find_prev_rate(self, income: float, status: FilingStatus) -> float:
        return self._require_previous().find_rate(income, status)

    def find_prev_bracket_with_income(
        self, income: float, status: FilingStatus
    ) -> TaxBracket:
        return self._require_previous().find_bracket_with_income(income, status)

    def find_prev_bracket_with_rate(
        self, rate: float, status: FilingStatus
    ) -> TaxBracket:
        return self._require_previous().find_bracket_with_rate(rate, status)

    def calculate_prev_tax(self, income: float, status: FilingStatus) -> float:
        return self._require_previous().calculate_tax(income, status)

    def _copy_brackets(self) -> "TaxBracketSet":
        snapshot = TaxBracketSet(self.label)
        snapshot.brackets = copy.deepcopy(self.brackets)
        return snapshot

    def clone(self) -> "TaxBracketSet":
        cloned = self._copy_brackets()
        cloned.previous = self.previous.clone() if self.previous else None
        return cloned


class StandardDeductionTable:
    def __init__(self):
        self.deductions: Dict[FilingStatus, float] = {}
        self.previous: Optional[Dict[FilingStatus, float]] = None

    def add_deduction(self, amount: float, status: FilingStatus) -> None:
        if status in self.deductions:
            raise ConfigurationError(
                f"standard deduction for {status.value} filers defined twice"
            )
        if amount < 0:
            raise ConfigurationError(f"standard deduction {amount} is negative")
        self.deductions[status] = float(amount)

    def find_deduction(self, status: FilingStatus) -> float:
        if status not in self.deductions:
            raise ConfigurationError(
                f"no standard deduction for {status.value} filers"
            )
        return self.deductions[status]

    def find_prev_deduction(self, status: FilingStatus) -> float:
        if self.previous is None:
            raise ValueError("no previous-year standard deduction yet")
        return self.previous[status]

    def adjust_for_inflation(self, rate: float) -> None:
        self.previous = dict(self.deductions)
        self.deductions = {
            status: float(round(amount * (1 + rate)))
            for status, amount in self.deductions.items()
        }

    def clone(self) -> "StandardDeductionTable":
        cloned = StandardDeductionTable()
        cloned.deductions = dict(self.deductions)
        cloned.previous = dict(self.previous) if self.previous is not None else None
        return cloned
