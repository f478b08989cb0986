"""
optboard: live option board with periodic chain analytics.

Ingests option tickers into a shared board keyed by contract, and
periodically analyzes consistent snapshots of it (maturity ladders,
OTM filters, Black-Scholes Greeks, open-interest exposure, charts).
"""

__version__ = "0.1.0"
