"""
Alert distribution to subscriptions.

Stores one alert history row per (subscription, alert) match, skipping
alerts a subscription already received.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ...persistence.db import SessionScope
from ...persistence.repo import AlertRepository, SubscriptionRepository
from ..normalize.records import NormalizedAlert
from .matching import matches_subscription

logger = logging.getLogger(__name__)


class SubscriptionDistributor:
    """Fan collected alerts out to the active subscriptions."""

    def __init__(self, sessions: SessionScope):
        self._sessions = sessions

    def distribute(self, alerts: Sequence[NormalizedAlert]) -> int:
        """Deliver alerts to every matching subscription.

        All deliveries of one call share a transaction.

        Args:
            alerts: Alerts collected by one source

        Returns:
            Number of history rows created
        """
        if not alerts:
            return 0

        delivered = 0
        with self._sessions() as session:
            subscriptions = SubscriptionRepository(session).list_active()
            if not subscriptions:
                logger.debug("No active subscriptions, %d alerts not distributed", len(alerts))
                return 0

            history = AlertRepository(session)
            for alert in alerts:
                for subscription in subscriptions:
                    if not matches_subscription(subscription, alert):
                        continue
                    if history.exists(
                        subscription.id,
                        alert.titulo[:500],
                        alert.fuente,
                        alert.fecha_publicacion,
                    ):
                        continue
                    history.create(alert, subscription_id=subscription.id)
                    delivered += 1

        logger.info("Distributed %d of %d alerts", delivered, len(alerts))
        return delivered
