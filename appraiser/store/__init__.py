"""
Persistence layer — Card Store, pricing snapshot cache, dead-letter queue.
"""

from appraiser.store.cards import CardStore
from appraiser.store.dead_letters import DeadLetterQueue, SqlDeadLetterQueue
from appraiser.store.pricing_cache import PricingCache

__all__ = ["CardStore", "DeadLetterQueue", "PricingCache", "SqlDeadLetterQueue"]
