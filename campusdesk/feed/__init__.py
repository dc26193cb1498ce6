# Feed module - live change propagation
from .change_feed import ChangeFeed, ChangeEvent, ChangeType, Predicate, Subscription

__all__ = ["ChangeFeed", "ChangeEvent", "ChangeType", "Predicate", "Subscription"]
