"""
Portfolio Recommendation Engine
Scoring, capital distribution and audit trail for nightly portfolio runs
"""

__version__ = "0.1.0"
