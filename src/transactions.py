import logging

from abc import ABC, abstractmethod
from typing import Dict, Optional

# Internal Imports
from domain import Investment, TaxStatus
from errors import ConfigurationError
from events import allocation_sums_to_one
from simulation_state import SimulationState
from taxes import IncomeType


EPSILON = 1e-6


class Transaction(ABC):
    """
    One stage of the yearly pipeline. apply() mutates the trial state and
    returns False only when the trial cannot continue.
    """

    label = "Transaction"

    @abstractmethod
    def apply(self, state: SimulationState) -> bool:
        pass


def pay_from_cash_then_withdraw(
    state: SimulationState, amount: float, max_net_worth_drop: Optional[float] = None
) -> float:
    """
    Pay `amount` out of cash first, liquidating the expense withdrawal
    strategy for the rest. Returns the total actually paid.

    With `max_net_worth_drop`, payment stops once net worth has fallen by
    that much: cash lowers it dollar for dollar, a sale by the cost basis sold.
    """
    if amount <= 0:
        return 0.0
    cash = state.account_manager.cash
    from_cash = min(max(cash.value, 0.0), amount)
    max_basis = None
    if max_net_worth_drop is not None:
        from_cash = min(from_cash, max(max_net_worth_drop, 0.0))
        max_basis = max_net_worth_drop - from_cash
    cash.withdraw(from_cash)
    remaining = amount - from_cash
    withdrawn = (
        state.process_investment_withdrawal(remaining, max_basis)
        if remaining > 0 and (max_basis is None or max_basis > 0)
        else 0.0
    )
    return from_cash + withdrawn


class IncomeTransaction(Transaction):
    label = "Income"

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        events = state.event_manager
        cash = state.account_manager.cash

        for event in events.get_active_income_event(year):
            amount = events.update_initial_amount(event, state.inflation_rate)
            amount = state.survivor_amount(event, amount)
            cash.deposit(amount)
            state.user_tax_data.incr_income(amount)
            if event.social_security:
                state.user_tax_data.incr_social_security(amount)
            events.record_income(event.name, amount)
            logging.debug(f"[{self.label}] {year} — '{event.name}' paid ${amount:,.2f}")
        return True


class RequiredMinimumDistributionTransaction(Transaction):
    label = "RMD"
    START_AGE = 74
    # IRS Uniform Lifetime divisors by age
    DEFAULT_DIVISOR_TABLE = {
        70: 27.4,
        71: 26.5,
        72: 25.6,
        73: 24.7,
        74: 23.8,
        75: 22.9,
        76: 22.0,
        77: 21.2,
        78: 20.3,
        79: 19.5,
        80: 18.7,
        81: 17.9,
        82: 17.1,
        83: 16.3,
        84: 15.5,
        85: 14.8,
        86: 14.1,
        87: 13.4,
        88: 12.7,
        89: 12.0,
        90: 11.4,
        91: 10.8,
        92: 10.2,
        93: 9.6,
        94: 9.1,
        95: 8.6,
        96: 8.1,
        97: 7.6,
        98: 7.1,
        99: 6.7,
        100: 6.3,
    }

    def __init__(self, divisor_table: Optional[Dict[int, float]] = None):
        self.divisor_table = dict(divisor_table or self.DEFAULT_DIVISOR_TABLE)
        if not self.divisor_table:
            raise ConfigurationError("RMD divisor table is empty")
        for age, divisor in self.divisor_table.items():
            if divisor <= 0:
                raise ConfigurationError(f"RMD divisor for age {age} is {divisor}")

    def divisor_for(self, age: int) -> float:
        if age in self.divisor_table:
            return self.divisor_table[age]
        ages = sorted(self.divisor_table)
        # beyond the table the terminal factor applies
        return self.divisor_table[ages[-1] if age > ages[-1] else ages[0]]

    def apply(self, state: SimulationState) -> bool:
        age = state.get_age()
        if age < self.START_AGE:
            return True

        accounts = state.account_manager
        total_pre_tax = accounts.get_total_pre_tax_value()
        if total_pre_tax <= 0:
            return True

        required = total_pre_tax / self.divisor_for(age)
        remaining = required
        for inv_id in state.rmd_strategy:
            if remaining <= 0:
                break
            investment = accounts.pre_tax.get(inv_id)
            if investment is None:
                raise ConfigurationError(f"RMDStrategy: '{inv_id}' is not a pre-tax investment")
            if investment.value <= 0:
                continue
            amount = min(remaining, investment.value)
            investment.withdraw(amount)
            accounts.cash.deposit(amount)
            remaining -= amount

        distributed = required - remaining
        state.user_tax_data.incr_income(distributed)
        state.add_flow("rmd", distributed)
        if remaining > EPSILON:
            logging.debug(
                f"[{self.label}] {state.current_year} — required ${required:,.2f}, "
                f"distributed ${distributed:,.2f}"
            )
        return True


class MarketGainTransaction(Transaction):
    """
    Annual growth of every holding:
      - sampled return changes value
      - sampled income is reinvested (value and cost basis), and is
        ordinary income when taxable and held outside retirement accounts
      - expense-ratio fee on the average of start and end value
    """

    label = "Growth"

    def apply(self, state: SimulationState) -> bool:
        types = state.investment_type_manager
        for investment in state.account_manager.all.values():
            inv_type = types.get(investment.investment_type)
            start_value = investment.value

            gain = inv_type.annual_gain_on(start_value)
            income = inv_type.annual_income_on(start_value)

            investment.value += gain
            investment.deposit(income)
            if inv_type.taxability and investment.tax_status is TaxStatus.NON_RETIREMENT:
                state.user_tax_data.incr_income(income)

            fee = (start_value + investment.value) / 2 * inv_type.expense_ratio
            investment.value -= fee
            state.add_flow("investment_income", income)
            state.add_flow("fees", fee)
        return True


class RothConversionTransaction(Transaction):
    """
    Fill the current ordinary-income bracket by converting pre-tax holdings
    into after-tax ones, bounded by the remaining after-tax contribution room.
    """

    label = "RothConversion"

    def _target_for(self, state: SimulationState, source: Investment) -> Investment:
        """After-tax counterpart of `source`, created and made withdrawable if new."""
        accounts = state.account_manager
        if "pre-tax" in source.id:
            target_id = source.id.replace("pre-tax", "after-tax")
        else:
            target_id = f"{source.id} after-tax"
        target = accounts.find(target_id)
        if target is not None:
            if target.tax_status is not TaxStatus.AFTER_TAX:
                raise ConfigurationError(
                    f"Roth conversion target '{target_id}' is not an after-tax investment"
                )
            return target
        target = Investment(
            target_id, source.investment_type, TaxStatus.AFTER_TAX, 0.0, 0.0
        )
        accounts.add(target)
        state.expense_withdrawal_strategy.append(target_id)
        return target

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        if not state.roth_conversion_opt:
            return True
        if not state.roth_conversion_start <= year <= state.roth_conversion_end:
            return True

        data = state.user_tax_data
        status = state.get_tax_filing_status()
        federal = state.federal_tax_service
        taxable = max(
            0.0, data.get_cur_fed_taxable_income() - federal.find_deduction(status)
        )
        bracket = federal.find_bracket_with_income(
            taxable, IncomeType.TAXABLE_INCOME, status
        )
        bracket_room = bracket.max - taxable
        contribution_room = state.after_tax_contribution_limit - data.get_cur(
            "after_tax_contributions"
        )
        amount = min(bracket_room, contribution_room)
        if amount <= 0:
            logging.debug(f"[{self.label}] {year} — no headroom")
            return True

        accounts = state.account_manager
        converted = 0.0
        for inv_id in state.roth_conversion_strategy:
            if converted >= amount:
                break
            source = accounts.pre_tax.get(inv_id)
            if source is None:
                raise ConfigurationError(
                    f"RothConversionStrategy: '{inv_id}' is not a pre-tax investment"
                )
            if source.value <= 0:
                continue
            target = self._target_for(state, source)
            converted += source.transfer(amount - converted, target)

        data.incr_income(converted)
        data.incr_after_tax_contribution(converted)
        state.add_flow("roth_conversion", converted)
        logging.debug(
            f"[{self.label}] {year} — converted ${converted:,.2f} of ${amount:,.2f} headroom"
        )
        return True


class MandatoryExpenseTransaction(Transaction):
    """
    Pays this year's non-discretionary expenses plus the tax bill on last
    year's income. Returns False when liquidation cannot cover it.
    """

    label = "MandatoryExpense"

    def __init__(self):
        self.shortfall = 0.0

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        events = state.event_manager
        self.shortfall = 0.0

        expenses = 0.0
        for event in events.get_active_mandatory_event(year):
            amount = events.update_initial_amount(event, state.inflation_rate)
            amount = state.survivor_amount(event, amount)
            events.record_expense(event.name, amount, discretionary=False)
            expenses += amount

        taxes = state.taxes_due["total_tax"]
        total = expenses + taxes
        paid = pay_from_cash_then_withdraw(state, total)
        state.add_flow("taxes_paid", taxes)

        if paid < total - EPSILON:
            self.shortfall = total - paid
            logging.warning(
                f"[{self.label}] {year} — cannot cover ${total:,.2f}, "
                f"short ${self.shortfall:,.2f}"
            )
            return False
        logging.debug(
            f"[{self.label}] {year} — paid ${expenses:,.2f} expenses and ${taxes:,.2f} taxes"
        )
        return True


class DiscretionaryExpenseTransaction(Transaction):
    label = "DiscretionaryExpense"

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        events = state.event_manager
        accounts = state.account_manager
        goal = state.get_financial_goal()

        # every active amount advances exactly once, paid or not
        amounts = {
            event.name: state.survivor_amount(
                event, events.update_initial_amount(event, state.inflation_rate)
            )
            for event in events.get_active_discretionary_event(year)
        }

        for name in state.spending_strategy:
            event = events.get_expense_event(name)
            if name not in amounts:
                continue

            headroom = accounts.get_net_worth() - goal
            if headroom <= 0:
                logging.debug(
                    f"[{self.label}] {year} — net worth at goal, skipping '{name}' onward"
                )
                break

            full_payment = amounts[name]
            paid = pay_from_cash_then_withdraw(state, full_payment, headroom)
            events.record_expense(name, paid, discretionary=event.discretionary)
            logging.debug(
                f"[{self.label}] {year} — '{name}' paid ${paid:,.2f} of ${full_payment:,.2f}"
            )
            if paid < full_payment - EPSILON:
                break
        return True


class InvestExcessCashTransaction(Transaction):
    label = "InvestExcessCash"

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        accounts = state.account_manager
        cash = accounts.cash
        data = state.user_tax_data

        for event in state.event_manager.get_active_invest_event(year):
            excess = cash.value - event.max_cash
            if excess <= 0:
                continue

            allocation = event.allocation_for(year)
            if not allocation_sums_to_one(allocation):
                logging.warning(
                    f"[{self.label}] {year} — '{event.name}' allocation sums to "
                    f"{sum(allocation.values()):.4f}, skipping"
                )
                continue

            holdings: Dict[str, Investment] = {}
            for inv_id in allocation:
                investment = accounts.get(inv_id)
                if investment.tax_status is TaxStatus.PRE_TAX or investment is cash:
                    raise ConfigurationError(
                        f"invest event '{event.name}' cannot allocate to '{inv_id}'"
                    )
                holdings[inv_id] = investment

            amounts = {inv_id: excess * pct for inv_id, pct in allocation.items()}
            after_tax = [i for i, inv in holdings.items() if inv.tax_status is TaxStatus.AFTER_TAX]
            non_retirement = [i for i in holdings if i not in after_tax]

            after_tax_total = sum(amounts[i] for i in after_tax)
            room = max(
                0.0,
                state.after_tax_contribution_limit - data.get_cur("after_tax_contributions"),
            )
            if after_tax_total > room:
                overflow = after_tax_total - room
                for inv_id in after_tax:
                    amounts[inv_id] *= room / after_tax_total
                weight = sum(allocation[i] for i in non_retirement)
                if weight > 0:
                    for inv_id in non_retirement:
                        amounts[inv_id] += overflow * allocation[inv_id] / weight
                logging.debug(
                    f"[{self.label}] {year} — after-tax capped, redirected ${overflow:,.2f}"
                )

            for inv_id, amount in amounts.items():
                if amount <= 0:
                    continue
                cash.withdraw(amount)
                holdings[inv_id].deposit(amount)
                if inv_id in after_tax:
                    data.incr_after_tax_contribution(amount)
                state.add_flow("invested", amount)
        return True


class RebalanceTransaction(Transaction):
    """
    Moves holdings of one tax status toward target percentages of their
    combined value. Sales run first so gains are realized before purchases.
    """

    label = "Rebalance"

    def apply(self, state: SimulationState) -> bool:
        year = state.current_year
        accounts = state.account_manager

        for event in state.event_manager.get_active_rebalance_event(year):
            allocation = event.allocation_for(year)
            holdings = {inv_id: accounts.get(inv_id) for inv_id in allocation}

            if any(inv is accounts.cash for inv in holdings.values()):
                raise ConfigurationError(
                    f"rebalance event '{event.name}' cannot allocate to cash"
                )
            statuses = {inv.tax_status for inv in holdings.values()}
            if len(statuses) > 1:
                raise ConfigurationError(
                    f"rebalance event '{event.name}' mixes tax statuses "
                    f"{sorted(s.value for s in statuses)}"
                )
            if not allocation_sums_to_one(allocation):
                logging.warning(
                    f"[{self.label}] {year} — '{event.name}' allocation sums to "
                    f"{sum(allocation.values()):.4f}, skipping"
                )
                continue

            status = statuses.pop()
            total = sum(inv.value for inv in holdings.values())
            deltas = {
                inv_id: total * pct - holdings[inv_id].value
                for inv_id, pct in allocation.items()
            }

            for inv_id, delta in deltas.items():
                if delta >= 0:
                    continue
                gain = holdings[inv_id].withdraw(-delta)
                if status is TaxStatus.NON_RETIREMENT:
                    state.user_tax_data.incr_capital_gains(gain)

            for inv_id, delta in deltas.items():
                if delta > 0:
                    holdings[inv_id].deposit(delta)

            logging.debug(f"[{self.label}] {year} — '{event.name}' rebalanced ${total:,.2f}")
        return True
