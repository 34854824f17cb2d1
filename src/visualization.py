import logging
import numpy as np
import pandas as pd
import plotly.graph_objects as go


def _confidence_color(sim_size: int) -> str:
    return "green" if sim_size >= 1000 else "blue" if sim_size >= 100 else "red"


def _success_color(value: float) -> str:
    return "green" if value > 0.85 else "blue" if value > 0.75 else "red"


def plot_mc_networth(
    mc_networth_df: pd.DataFrame,
    sim_examples: np.ndarray,
    ts: str,
    show: bool,
    save: bool,
    export_path: str = "export/",
) -> go.Figure:
    """
    Net-worth fan chart: rows are years, columns are trials. Trials whose
    final value falls outside the 5th-95th percentile are not drawn.
    """
    sim_size = len(mc_networth_df.columns)
    pct_df = mc_networth_df.quantile([0.15, 0.5, 0.85], axis=1).T
    pct_df.columns = ["p15", "median", "p85"]

    fig = go.Figure()

    final_values = mc_networth_df.ffill().iloc[-1]
    lower_bound = final_values.quantile(0.05)
    upper_bound = final_values.quantile(0.95)
    filtered_cols = [
        col
        for col in mc_networth_df.columns
        if lower_bound <= final_values[col] <= upper_bound
    ]

    for col in filtered_cols:
        is_example = col in sim_examples
        color, opacity, width = ("purple", 0.6, 2) if is_example else ("gray", 0.2, 1)
        hover_kwargs = (
            {"hovertemplate": f"Trial {int(col)+1:04d}: %{{y:$,.0f}}<extra></extra>"}
            if is_example
            else {"hoverinfo": "skip"}
        )
        fig.add_trace(
            go.Scatter(
                x=mc_networth_df.index,
                y=mc_networth_df[col],
                showlegend=False,
                line=dict(color=color, width=width),
                opacity=opacity,
                **hover_kwargs,
            )
        )

    def make_trace(name, x, y, **line_kwargs):
        return go.Scatter(
            x=x,
            y=y,
            name=name,
            line=line_kwargs,
            hovertemplate=f"{name}: %{{y:$,.0f}}<extra></extra>",
        )

    years = mc_networth_df.index
    fig.add_trace(make_trace("85th Percentile", years, pct_df["p85"], color="blue", width=1))
    fig.add_trace(make_trace("Median", years, pct_df["median"], color="green", width=2))
    fig.add_trace(make_trace("15th Percentile", years, pct_df["p15"], color="blue", width=1))

    fig.update_layout(
        title=(
            f"Monte Carlo Net Worth Forecast"
            f" | <span style='color: {_confidence_color(sim_size)}'>{sim_size} Trials</span>"
        ),
        title_x=0.5,
        yaxis_tickformat="$,.0f",
        template="plotly_white",
        showlegend=False,
        hovermode="x unified",
        hoverlabel=dict(align="left"),
    )

    if show:
        fig.show()
    if save:
        mc_networth_df.to_csv(f"{export_path}mc_networth_{ts}.csv", index_label="Year")
        html = f"{export_path}mc_networth_{ts}.html"
        fig.write_html(html)
        logging.debug(f"Monte Carlo files saved to {html}")
    return fig


def plot_success_probability(
    summary_df: pd.DataFrame,
    sim_size: int,
    ts: str,
    show: bool,
    save: bool,
    export_path: str = "export/",
) -> go.Figure:
    """Per-year share of trials at or above the financial goal."""
    final = summary_df["Success Probability"].iloc[-1] if not summary_df.empty else 0.0

    fig = go.Figure(
        go.Scatter(
            x=summary_df.index,
            y=summary_df["Success Probability"],
            name="Success Probability",
            line=dict(color="green", width=2),
            hovertemplate="%{x}: %{y:.1%}<extra></extra>",
        )
    )
    fig.update_layout(
        title=(
            f"Probability of Meeting Financial Goal"
            f" | <span style='color: {_confidence_color(sim_size)}'>{sim_size} Trials</span>"
            f"<br><br>Final Year: <span style='color: {_success_color(final)}'>{final:.1%}</span>"
        ),
        title_x=0.5,
        yaxis_tickformat=".0%",
        yaxis_range=[0, 1],
        template="plotly_white",
        hovermode="x unified",
    )

    if show:
        fig.show()
    if save:
        summary_df.to_csv(f"{export_path}mc_summary_{ts}.csv", index_label="Year")
        html = f"{export_path}mc_success_{ts}.html"
        fig.write_html(html)
        logging.debug(f"Success probability chart saved to {html}")
    return fig
