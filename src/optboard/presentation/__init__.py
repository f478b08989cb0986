"""
Presentation of chain projections.
"""

from optboard.presentation.charts import ChartWriter, build_metric_figure

__all__ = ["ChartWriter", "build_metric_figure"]
