"""
Messaging - broadcast channel adapters
"""

from .broadcast import (
    Broadcast,
    Subscription,
    TopicSubscription,
    MemoryBroadcast,
    HttpBroadcast,
)

__all__ = ["Broadcast", "Subscription", "TopicSubscription", "MemoryBroadcast", "HttpBroadcast"]
