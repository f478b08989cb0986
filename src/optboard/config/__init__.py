"""
Configuration for the option board monitor.
"""

from optboard.config.logging import configure_logging
from optboard.config.settings import (
    AnalysisConfig,
    ChartConfig,
    FeedConfig,
    LoggingConfig,
    MonitorConfig,
    load_monitor_config,
)

__all__ = [
    "MonitorConfig",
    "FeedConfig",
    "AnalysisConfig",
    "ChartConfig",
    "LoggingConfig",
    "load_monitor_config",
    "configure_logging",
]
