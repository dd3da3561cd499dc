"""
Models package — export all SQLAlchemy models.
"""

from appraiser.models.base import Base
from appraiser.models.card import CardRecord
from appraiser.models.dead_letter import DeadLetter
from appraiser.models.pricing_snapshot import PricingSnapshot
from appraiser.models.workflow_request import WorkflowRequest

__all__ = ["Base", "CardRecord", "DeadLetter", "PricingSnapshot", "WorkflowRequest"]
