import copy
import logging
import math

from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

# Internal Imports
from domain import ChangeType, TaxStatus
from errors import ConfigurationError
from value_source import Distribution, ValueSource


ALLOCATION_TOLERANCE = 1e-6
ANCHOR_TYPES = {"startwith": "startWith", "startafter": "startAfter", "afterend": "startAfter"}


def glide_path_allocation(
    initial: Dict[str, float],
    final: Dict[str, float],
    start: int,
    duration: int,
    year: int,
) -> Dict[str, float]:
    """
    Linear interpolation between two allocations over an event's span.
      progress = clamp((year - start) / duration, 0, 1)
      pct      = initial + (final - initial) * progress
    Holdings missing from one side are treated as 0 there.
    """
    if duration <= 0:
        progress = 1.0
    else:
        progress = min(1.0, max(0.0, (year - start) / duration))

    if progress == 0.0:
        return dict(initial)
    if progress == 1.0:
        return dict(final)

    names = list(initial) + [n for n in final if n not in initial]
    return {
        n: initial.get(n, 0.0) + (final.get(n, 0.0) - initial.get(n, 0.0)) * progress
        for n in names
    }


def allocation_sums_to_one(allocation: Dict[str, float]) -> bool:
    return math.isclose(sum(allocation.values()), 1.0, abs_tol=ALLOCATION_TOLERANCE)


class Event:
    kind = "event"

    def __init__(self, name: str, start: int, duration: int):
        self.name = name
        self.start = int(start)
        self.duration = int(duration)

    @property
    def end(self) -> int:
        return self.start + self.duration

    def is_active(self, year: int) -> bool:
        return self.start <= year < self.end

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.start}–{self.end})"


class CashFlowEvent(Event):
    """Income or expense with a running amount advanced once per active year."""

    def __init__(
        self,
        name: str,
        start: int,
        duration: int,
        initial_amount: float,
        change_type: ChangeType,
        change_distribution: Distribution,
        inflation_adjusted: bool = False,
        user_fraction: float = 1.0,
    ):
        super().__init__(name, start, duration)
        if not 0 <= user_fraction <= 1:
            raise ConfigurationError(
                f"event '{name}': userFraction {user_fraction} not in [0, 1]"
            )
        if initial_amount < 0:
            raise ConfigurationError(
                f"event '{name}': initialAmount {initial_amount} is negative"
            )
        self.initial_amount = float(initial_amount)
        self.change_type = change_type
        self.change_distribution = change_distribution
        self.inflation_adjusted = bool(inflation_adjusted)
        self.user_fraction = float(user_fraction)


class IncomeEvent(CashFlowEvent):
    kind = "income"

    def __init__(self, *args, social_security: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.social_security = bool(social_security)


class ExpenseEvent(CashFlowEvent):
    kind = "expense"

    def __init__(self, *args, discretionary: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.discretionary = bool(discretionary)


class AllocationEvent(Event):
    def __init__(
        self,
        name: str,
        start: int,
        duration: int,
        asset_allocation: Dict[str, float],
        glide_path: bool = False,
        asset_allocation2: Optional[Dict[str, float]] = None,
    ):
        super().__init__(name, start, duration)
        if not asset_allocation:
            raise ConfigurationError(f"event '{name}': assetAllocation is empty")
        if glide_path and not asset_allocation2:
            raise ConfigurationError(
                f"event '{name}': glidePath requires assetAllocation2"
            )
        for alloc in (asset_allocation, asset_allocation2 or {}):
            for inv_id, pct in alloc.items():
                if pct < 0:
                    raise ConfigurationError(
                        f"event '{name}': allocation for '{inv_id}' is negative"
                    )
        self.asset_allocation = {k: float(v) for k, v in asset_allocation.items()}
        self.glide_path = bool(glide_path)
        self.asset_allocation2 = {
            k: float(v) for k, v in (asset_allocation2 or {}).items()
        }

    def allocation_for(self, year: int) -> Dict[str, float]:
        if not self.glide_path:
            return dict(self.asset_allocation)
        return glide_path_allocation(
            self.asset_allocation,
            self.asset_allocation2,
            self.start,
            self.duration,
            year,
        )


class InvestEvent(AllocationEvent):
    kind = "invest"

    def __init__(self, *args, max_cash: float = 0.0, **kwargs):
        super().__init__(*args, **kwargs)
        if max_cash < 0:
            raise ConfigurationError(f"event '{self.name}': maxCash is negative")
        self.max_cash = float(max_cash)


class RebalanceEvent(AllocationEvent):
    kind = "rebalance"


class EventSeries:
    """
    A validated event definition whose start and duration are still
    distributions. Each trial resolves them once through resolve_event_chain
    and then calls build().
    """

    KINDS = ("income", "expense", "invest", "rebalance")

    def __init__(
        self,
        name: str,
        kind: str,
        duration: Distribution,
        start: Optional[Distribution] = None,
        anchor: Optional[Tuple[str, str]] = None,
        fields: Optional[Dict[str, Any]] = None,
    ):
        if kind not in self.KINDS:
            raise ConfigurationError(f"event '{name}': unknown type '{kind}'")
        if (start is None) == (anchor is None):
            raise ConfigurationError(
                f"event '{name}': needs exactly one of a start distribution or anchor"
            )
        self.name = name
        self.kind = kind
        self.start = start
        self.anchor = anchor
        self.duration = duration
        self.fields = fields or {}
        # constructing once validates every variant-specific field
        self.build(0, 1)

    @classmethod
    def from_config(cls, raw: Dict[str, Any]) -> "EventSeries":
        name = raw.get("name")
        if not name:
            raise ConfigurationError(f"eventSeries entry without a name: {raw!r}")

        kind = str(raw.get("type", "")).lower()
        start_raw = raw.get("start")
        if not isinstance(start_raw, dict) or "type" not in start_raw:
            raise ConfigurationError(f"event '{name}': start missing or malformed")

        start, anchor = None, None
        anchor_type = ANCHOR_TYPES.get(str(start_raw["type"]).lower())
        if anchor_type:
            target = start_raw.get("eventSeries")
            if not target:
                raise ConfigurationError(
                    f"event '{name}': {anchor_type} start needs eventSeries"
                )
            anchor = (anchor_type, target)
        else:
            start = Distribution.from_config(start_raw, field=f"{name}.start")

        duration = Distribution.from_config(
            raw.get("duration"), field=f"{name}.duration"
        )

        if kind in ("income", "expense"):
            fields = {
                "initial_amount": float(raw.get("initialAmount", 0)),
                "change_type": ChangeType.parse(raw.get("changeAmtOrPct", "amount")),
                "change_distribution": Distribution.from_config(
                    raw.get("changeDistribution", {"type": "fixed", "value": 0}),
                    field=f"{name}.changeDistribution",
                ),
                "inflation_adjusted": bool(raw.get("inflationAdjusted", False)),
                "user_fraction": float(raw.get("userFraction", 1.0)),
            }
            if kind == "income":
                fields["social_security"] = bool(raw.get("socialSecurity", False))
            else:
                fields["discretionary"] = bool(raw.get("discretionary", False))
        else:
            fields = {
                "asset_allocation": dict(raw.get("assetAllocation") or {}),
                "glide_path": bool(raw.get("glidePath", False)),
                "asset_allocation2": dict(raw.get("assetAllocation2") or {}),
            }
            if kind == "invest":
                fields["max_cash"] = float(raw.get("maxCash", 0))

        return cls(name, kind, duration, start=start, anchor=anchor, fields=fields)

    def build(self, start: int, duration: int) -> Event:
        event_cls = {
            "income": IncomeEvent,
            "expense": ExpenseEvent,
            "invest": InvestEvent,
            "rebalance": RebalanceEvent,
        }[self.kind]
        return event_cls(self.name, start, duration, **self.fields)


def resolve_event_chain(
    series: List[EventSeries], source: ValueSource
) -> Dict[str, Tuple[int, int]]:
    """
    Resolve (start, duration) for every series.

    Distribution starts and all durations are sampled in input order; then
    startWith / startAfter anchors are resolved against already-resolved
    events until nothing is left. Duplicate names, unknown anchors and
    cycles are configuration errors.
    """
    names = [s.name for s in series]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate event names: {', '.join(duplicates)}")

    resolved: Dict[str, Tuple[int, int]] = {}
    durations: Dict[str, int] = {}
    pending = deque()

    for s in series:
        start = int(round(s.start.sample(source))) if s.start is not None else None
        duration = int(round(s.duration.sample(source)))
        if duration < 0:
            logging.warning(
                f"[EventChain] '{s.name}' sampled negative duration {duration}, using 0"
            )
            duration = 0
        durations[s.name] = duration
        if start is None:
            if s.anchor[1] not in names:
                raise ConfigurationError(
                    f"event '{s.name}' anchors on unknown event '{s.anchor[1]}'"
                )
            pending.append(s)
        else:
            resolved[s.name] = (start, duration)

    stalled = 0
    while pending:
        s = pending.popleft()
        anchor_type, target = s.anchor
        if target in resolved:
            t_start, t_duration = resolved[target]
            start = t_start if anchor_type == "startWith" else t_start + t_duration
            resolved[s.name] = (start, durations[s.name])
            stalled = 0
            continue
        pending.append(s)
        stalled += 1
        if stalled > len(pending):
            cycle = ", ".join(p.name for p in pending)
            raise ConfigurationError(f"unresolvable event chain among: {cycle}")

    return resolved


def prune_overlapping_events(
    events: Iterable[Event], group_of: Callable[[Event], Any] = lambda e: None
) -> List[Event]:
    """
    Keep events in (start, name) order, skipping any that start at or before
    the end of the last kept event in the same group.
    """
    kept: List[Event] = []
    last_end: Dict[Any, float] = {}
    for ev in sorted(events, key=lambda e: (e.start, e.name)):
        group = group_of(ev)
        if ev.start <= last_end.get(group, -math.inf):
            logging.warning(
                f"[EventManager] skipping overlapping {ev.kind} event '{ev.name}' "
                f"({ev.start}–{ev.end})"
            )
            continue
        kept.append(ev)
        # an event covers years start..end-1
        last_end[group] = ev.end - 1
    return kept


class EventManager:
    """
    Owns one trial's resolved events plus the trial-scoped running amounts
    and yearly breakdowns.
    """

    def __init__(
        self,
        events: Iterable[Event],
        source: ValueSource,
        status_of: Optional[Callable[[str], TaxStatus]] = None,
    ):
        self.source = source
        self.income: Dict[str, IncomeEvent] = {}
        self.expense: Dict[str, ExpenseEvent] = {}
        invest: List[InvestEvent] = []
        rebalance: List[RebalanceEvent] = []

        for ev in events:
            if isinstance(ev, IncomeEvent):
                self.income[ev.name] = ev
            elif isinstance(ev, ExpenseEvent):
                self.expense[ev.name] = ev
            elif isinstance(ev, InvestEvent):
                invest.append(ev)
            elif isinstance(ev, RebalanceEvent):
                rebalance.append(ev)
            else:
                raise ConfigurationError(f"unsupported event {ev!r}")

        def rebalance_group(ev: RebalanceEvent):
            first = next(iter(ev.asset_allocation))
            return status_of(first) if status_of else None

        self.invest: Dict[str, InvestEvent] = {
            ev.name: ev for ev in prune_overlapping_events(invest)
        }
        self.rebalance: Dict[str, RebalanceEvent] = {
            ev.name: ev for ev in prune_overlapping_events(rebalance, rebalance_group)
        }

        self.amounts: Dict[str, float] = {
            name: ev.initial_amount
            for name, ev in list(self.income.items()) + list(self.expense.items())
        }
        self.reset_year_totals()

    @classmethod
    def from_series(
        cls,
        series: List[EventSeries],
        source: ValueSource,
        status_of: Optional[Callable[[str], TaxStatus]] = None,
    ) -> "EventManager":
        timing = resolve_event_chain(series, source)
        events = [s.build(*timing[s.name]) for s in series]
        return cls(events, source, status_of)

    def reset_year_totals(self) -> None:
        self.income_breakdown: Dict[str, float] = {}
        self.expense_breakdown: Dict[str, float] = {}
        self.expense_totals: Dict[str, float] = {"mandatory": 0.0, "discretionary": 0.0}

    def get_active_income_event(self, year: int) -> List[IncomeEvent]:
        return [ev for ev in self.income.values() if ev.is_active(year)]

    def get_active_expense_event(self, year: int) -> List[ExpenseEvent]:
        return [ev for ev in self.expense.values() if ev.is_active(year)]

    def get_active_mandatory_event(self, year: int) -> List[ExpenseEvent]:
        return [ev for ev in self.get_active_expense_event(year) if not ev.discretionary]

    def get_active_discretionary_event(self, year: int) -> List[ExpenseEvent]:
        return [ev for ev in self.get_active_expense_event(year) if ev.discretionary]

    def get_active_invest_event(self, year: int) -> List[InvestEvent]:
        return [ev for ev in self.invest.values() if ev.is_active(year)]

    def get_active_rebalance_event(self, year: int) -> List[RebalanceEvent]:
        return [ev for ev in self.rebalance.values() if ev.is_active(year)]

    def get_expense_event(self, name: str) -> ExpenseEvent:
        if name not in self.expense:
            raise ConfigurationError(f"expense event '{name}' does not exist")
        return self.expense[name]

    def get_amount(self, event: CashFlowEvent) -> float:
        return self.amounts[event.name]

    def update_initial_amount(
        self, event: CashFlowEvent, inflation_rate: float
    ) -> float:
        """
        Advance the running amount by one sampled annual change, then by
        inflation when the event is inflation adjusted. Mutates state: call
        once per event per year.
        """
        amount = self.amounts[event.name]
        change = event.change_distribution.sample(self.source)
        amount += event.change_type.apply(amount, change)
        if event.inflation_adjusted:
            amount *= 1 + inflation_rate
        amount = max(0.0, amount)
        self.amounts[event.name] = amount
        return amount

    def record_income(self, name: str, amount: float) -> None:
        self.income_breakdown[name] = self.income_breakdown.get(name, 0.0) + amount

    def record_expense(self, name: str, amount: float, discretionary: bool) -> None:
        self.expense_breakdown[name] = self.expense_breakdown.get(name, 0.0) + amount
        key = "discretionary" if discretionary else "mandatory"
        self.expense_totals[key] += amount

    def clone(self, source: Optional[ValueSource] = None) -> "EventManager":
        cloned = copy.copy(self)
        cloned.source = source or self.source
        cloned.income = copy.deepcopy(self.income)
        cloned.expense = copy.deepcopy(self.expense)
        cloned.invest = copy.deepcopy(self.invest)
        cloned.rebalance = copy.deepcopy(self.rebalance)
        cloned.amounts = dict(self.amounts)
        cloned.income_breakdown = dict(self.income_breakdown)
        cloned.expense_breakdown = dict(self.expense_breakdown)
        cloned.expense_totals = dict(self.expense_totals)
        return cloned
