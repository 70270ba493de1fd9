"""
Subscription filters.

An empty filter list matches everything; region, entity and amount
filters only apply when the alert carries that attribute.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from ..normalize.records import NormalizedAlert


class SubscriptionFilters(Protocol):
    tipo: str | None
    palabras_clave: Sequence[str]
    regiones: Sequence[str]
    entidades: Sequence[str]
    monto_minimo: float | None
    monto_maximo: float | None


def matches_subscription(subscription: SubscriptionFilters, alert: NormalizedAlert) -> bool:
    """Check whether an alert passes a subscription's filters.

    Args:
        subscription: Subscription (or any object with the filter fields)
        alert: Alert to test

    Returns:
        True if every applicable filter accepts the alert
    """
    if subscription.tipo and subscription.tipo != alert.tipo:
        return False

    if subscription.palabras_clave:
        text = f"{alert.titulo} {alert.contenido}".lower()
        if not any(word.lower() in text for word in subscription.palabras_clave):
            return False

    if subscription.regiones and alert.region:
        region = alert.region.strip().upper()
        if not any(r.strip().upper() == region for r in subscription.regiones):
            return False

    if subscription.entidades and alert.entidad:
        entidad = alert.entidad.lower()
        if not any(e.lower() in entidad for e in subscription.entidades):
            return False

    if alert.monto is not None:
        if subscription.monto_minimo is not None and alert.monto < subscription.monto_minimo:
            return False
        if subscription.monto_maximo is not None and alert.monto > subscription.monto_maximo:
            return False

    return True
