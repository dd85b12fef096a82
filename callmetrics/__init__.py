"""
Call Metrics analytics backend.

Period-over-period aggregation engine for call-center performance data:
collections, inbound, welcome and verification call flows are fetched per
client and time window, reduced over raw counters, and turned into
comparable KPI summaries and health-scored scorecards.
"""

__version__ = "1.0.0"
