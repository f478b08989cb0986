"""
Task orchestration for the option board monitor.
"""

from optboard.orchestration.monitor import BoardMonitor, MonitorState, build_feed

__all__ = ["BoardMonitor", "MonitorState", "build_feed"]
