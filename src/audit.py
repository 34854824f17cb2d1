import pandas as pd

from typing import Any, Dict, List


class YearlyResultTracker:
    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    def record(self, state) -> None:
        """Snapshot the state at the end of a completed year."""
        accounts = state.account_manager
        data = state.user_tax_data
        events = state.event_manager
        net_worth = accounts.get_net_worth()
        mandatory = events.expense_totals["mandatory"]
        discretionary = events.expense_totals["discretionary"]

        self.records.append(
            {
                "Year": state.current_year,
                "Age": state.get_age(),
                "Inflation": state.inflation_rate,
                "Cumulative Inflation": state.inflation_factor,
                "Cash": accounts.cash.value,
                "Non-Retirement": accounts.get_total_non_retirement_value(),
                "Pre-Tax": accounts.get_total_pre_tax_value(),
                "After-Tax": accounts.get_total_after_tax_value(),
                "Net Worth": net_worth,
                "Market Value": accounts.get_market_value(),
                "Goal Met": net_worth >= state.get_financial_goal(),
                "Income": data.get_cur("income"),
                "Social Security": data.get_cur("social_security"),
                "Capital Gains": data.get_cur("capital_gains"),
                "Early Withdrawals": data.get_cur("early_withdrawals"),
                "After-Tax Contributions": data.get_cur("after_tax_contributions"),
                "Mandatory Expenses": mandatory,
                "Discretionary Expenses": discretionary,
                "Total Expenses": mandatory + discretionary,
                "Taxes": state.taxes_due["total_tax"],
                "RMD": state.year_flows.get("rmd", 0.0),
                "Roth Conversion": state.year_flows.get("roth_conversion", 0.0),
                "Income Breakdown": dict(events.income_breakdown),
                "Expense Breakdown": dict(events.expense_breakdown),
                "Investments": {
                    inv_id: inv.value for inv_id, inv in accounts.all.items()
                },
            }
        )

    def success_probability(self) -> float:
        if not self.records:
            return 0.0
        return sum(r["Goal Met"] for r in self.records) / len(self.records)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.records)
