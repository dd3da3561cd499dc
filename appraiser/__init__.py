"""
TCG Appraiser — trading-card valuation and authenticity pipeline.
"""

__version__ = "0.1.0"
