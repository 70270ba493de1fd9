"""Alert distribution to subscriptions."""

from .distributor import SubscriptionDistributor
from .matching import matches_subscription

__all__ = ["SubscriptionDistributor", "matches_subscription"]
