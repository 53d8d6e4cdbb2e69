"""
SR Performance Dashboard

Date-range aggregation and metric derivation for referrer (SR) performance,
served over FastAPI.
"""

__version__ = "1.0.0"
