"""
Price sources — each returns raw comps for a PriceQuery.
"""

from appraiser.pricing.sources.base import BasePriceSource
from appraiser.pricing.sources.ebay import EbaySource
from appraiser.pricing.sources.justtcg import JustTCGSource

__all__ = ["BasePriceSource", "EbaySource", "JustTCGSource"]
