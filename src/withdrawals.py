import logging

from typing import Callable, List, Optional

# Internal Imports
from domain import AccountManager, Investment, TaxStatus
from taxes import UserTaxData


EARLY_WITHDRAWAL_AGE = 59


class WithdrawalProcessor:
    """
    Liquidates investments in strategy order.

    For each sale of fraction f of a holding:
      - NON_RETIREMENT realizes f * (value - cost_basis) as capital gains
      - cost_basis shrinks by f * cost_basis for every status
      - PRE_TAX withdrawals count as ordinary income
      - before age 59, PRE_TAX and AFTER_TAX withdrawals are early withdrawals
    """

    def __init__(
        self,
        account_manager: AccountManager,
        user_tax_data: UserTaxData,
        get_age: Callable[[], int],
    ):
        self.account_manager = account_manager
        self.user_tax_data = user_tax_data
        self.get_age = get_age

    def execute_withdrawal(
        self, strategy: List[str], amount: float, max_basis: Optional[float] = None
    ) -> float:
        """
        Sell up to `amount` in strategy order. `max_basis` caps the total cost
        basis removed, which bounds the drop in net worth.
        """
        withdrawn = 0.0
        basis_removed = 0.0
        if amount <= 0:
            return withdrawn

        for inv_id in strategy:
            if withdrawn >= amount:
                break

            investment = self.account_manager.get(inv_id)
            if investment.value <= 0 or investment.cost_basis <= 0:
                logging.debug(
                    f"[Withdrawal] skipping '{inv_id}' "
                    f"(value={investment.value:,.2f}, cost_basis={investment.cost_basis:,.2f})"
                )
                continue

            to_withdraw = min(amount - withdrawn, investment.value)
            if max_basis is not None:
                basis_left = max_basis - basis_removed
                if basis_left <= 0:
                    break
                to_withdraw = min(
                    to_withdraw, basis_left * investment.value / investment.cost_basis
                )
            basis_before = investment.cost_basis
            gain = investment.withdraw(to_withdraw)
            basis_removed += basis_before - investment.cost_basis
            self._process_tax_implication(investment, to_withdraw, gain)
            withdrawn += to_withdraw
            logging.debug(
                f"[Withdrawal] sold ${to_withdraw:,.2f} of '{inv_id}', "
                f"${amount - withdrawn:,.2f} still needed"
            )

        return withdrawn

    def _process_tax_implication(
        self, investment: Investment, amount: float, gain: float
    ) -> None:
        if investment.tax_status is TaxStatus.NON_RETIREMENT:
            self.user_tax_data.incr_capital_gains(gain)

        if investment.tax_status is TaxStatus.PRE_TAX:
            self.user_tax_data.incr_income(amount)

        if self.get_age() < EARLY_WITHDRAWAL_AGE and investment.tax_status in (
            TaxStatus.PRE_TAX,
            TaxStatus.AFTER_TAX,
        ):
            self.user_tax_data.incr_early_withdrawal(amount)
