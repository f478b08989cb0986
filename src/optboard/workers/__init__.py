"""
Long-running tasks sharing one OptionBoard.
"""

from optboard.workers.analysis import AnalysisReport, AnalysisWorker, summarize_maturities
from optboard.workers.ingestion import IngestionStats, IngestionWorker

__all__ = [
    "IngestionWorker",
    "IngestionStats",
    "AnalysisWorker",
    "AnalysisReport",
    "summarize_maturities",
]
