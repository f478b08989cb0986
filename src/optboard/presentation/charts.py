"""
Metric Chart Output

Renders (strikes, values) projections as line charts, one HTML file per
metric name, overwritten on every analysis cycle.
"""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

import plotly.graph_objects as go
from loguru import logger

if TYPE_CHECKING:
    from optboard.config.settings import ChartConfig


def build_metric_figure(
    name: str,
    strikes: Sequence[float],
    values: Sequence[float],
    width: int = 640,
    height: int = 480,
) -> go.Figure:
    """
    Build a metric-vs-strike line chart.

    The y-axis is pinned to the min/max of the values actually produced.

    Args:
        name: Metric name (chart title)
        strikes: Ascending strikes (x-axis)
        values: Metric values aligned with strikes

    Returns:
        Plotly Figure

    Raises:
        ValueError: If the series are empty or misaligned
    """
    if len(strikes) != len(values):
        raise ValueError(f"Misaligned series for {name}: {len(strikes)} strikes, {len(values)} values")
    if not strikes:
        raise ValueError(f"No data to plot for {name}")

    fig = go.Figure(data=go.Scatter(
        x=list(strikes),
        y=list(values),
        mode="lines",
        line=dict(color="red"),
        name=name,
    ))
    fig.update_layout(
        title=name,
        width=width,
        height=height,
        xaxis_title="Strike",
        yaxis_title=name,
        template="plotly_white",
        margin=dict(l=30, r=5, t=50, b=30),
    )
    fig.update_xaxes(range=[strikes[0], strikes[-1]])
    fig.update_yaxes(range=[min(values), max(values)])
    return fig


class ChartWriter:
    """Writes metric charts into an output directory."""

    def __init__(self, output_dir: str = "charts", width: int = 640, height: int = 480):
        self.output_dir = Path(output_dir)
        self.width = width
        self.height = height

    @classmethod
    def from_config(cls, chart_config: "ChartConfig") -> "ChartWriter":
        return cls(
            output_dir=chart_config.output_dir,
            width=chart_config.width,
            height=chart_config.height,
        )

    def path_for(self, name: str) -> Path:
        return self.output_dir / f"{name}.html"

    def write(self, name: str, strikes: Sequence[float], values: Sequence[float]) -> Optional[Path]:
        """
        Render and write one chart.

        Returns:
            Path written, or None if there was nothing to plot
        """
        if not strikes:
            logger.warning(f"Skipping {name} chart: no defined values")
            return None

        fig = build_metric_figure(name, strikes, values, self.width, self.height)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name)
        fig.write_html(str(path), include_plotlyjs="cdn")
        logger.debug(f"Wrote {name} chart ({len(strikes)} points) to {path}")
        return path

    async def write_async(self, name: str, strikes: Sequence[float], values: Sequence[float]) -> Optional[Path]:
        """write() off the event loop."""
        return await asyncio.to_thread(self.write, name, strikes, values)
