"""Tests for subscription matching and alert distribution."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from govwatch.core.distribution import SubscriptionDistributor, matches_subscription
from govwatch.persistence.models import AlertHistory
from govwatch.persistence.repo import SubscriptionRepository


def subscription(**overrides):
    data = {
        "tipo": None,
        "palabras_clave": [],
        "regiones": [],
        "entidades": [],
        "monto_minimo": None,
        "monto_maximo": None,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


class TestMatching:
    def test_empty_filters_match_everything(self, alert_factory):
        assert matches_subscription(subscription(), alert_factory())

    def test_tipo_must_match(self, alert_factory):
        alert = alert_factory(tipo="NOTICIA")
        assert matches_subscription(subscription(tipo="NOTICIA"), alert)
        assert not matches_subscription(subscription(tipo="LICITACION"), alert)

    def test_keywords_search_title_and_content(self, alert_factory):
        alert = alert_factory(titulo="Convocatoria", contenido="Compra de LAPTOPS")
        assert matches_subscription(subscription(palabras_clave=["laptops"]), alert)
        assert matches_subscription(subscription(palabras_clave=["xyz", "convocatoria"]), alert)
        assert not matches_subscription(subscription(palabras_clave=["vehículos"]), alert)

    def test_region_filter_skipped_when_alert_has_no_region(self, alert_factory):
        sub = subscription(regiones=["CUSCO"])
        assert matches_subscription(sub, alert_factory(region=None))
        assert matches_subscription(sub, alert_factory(region="cusco"))
        assert not matches_subscription(sub, alert_factory(region="LIMA"))

    def test_region_filter_ignores_case_on_both_sides(self, alert_factory):
        sub = subscription(regiones=["Cusco", " lima "])
        assert matches_subscription(sub, alert_factory(region="CUSCO"))
        assert matches_subscription(sub, alert_factory(region="Lima"))
        assert not matches_subscription(sub, alert_factory(region="PIURA"))

    def test_entity_filter_is_case_insensitive_substring(self, alert_factory):
        sub = subscription(entidades=["sunat"])
        assert matches_subscription(sub, alert_factory(entidad="SUPERINTENDENCIA ... - SUNAT"))
        assert not matches_subscription(sub, alert_factory(entidad="MUNICIPALIDAD DE LIMA"))
        assert matches_subscription(sub, alert_factory(entidad=None))

    @pytest.mark.parametrize(
        "monto,expected",
        [(None, True), (500.0, False), (1000.0, True), (5000.0, True), (5000.01, False)],
    )
    def test_amount_bounds(self, alert_factory, monto, expected):
        sub = subscription(monto_minimo=1000.0, monto_maximo=5000.0)
        assert matches_subscription(sub, alert_factory(monto=monto)) is expected


class TestDistributor:
    def test_no_alerts_returns_zero(self, sessions):
        assert SubscriptionDistributor(sessions).distribute([]) == 0

    def test_no_active_subscriptions_returns_zero(self, sessions, alert_factory):
        with sessions() as session:
            SubscriptionRepository(session).create("inactiva", is_active=False)

        assert SubscriptionDistributor(sessions).distribute([alert_factory()]) == 0

    def test_creates_one_row_per_matching_subscription(self, sessions, alert_factory):
        with sessions() as session:
            repo = SubscriptionRepository(session)
            repo.create("todo")
            repo.create("noticias", tipo="NOTICIA")
            repo.create("equipos", palabras_clave=["cómputo"])

        delivered = SubscriptionDistributor(sessions).distribute([alert_factory()])

        assert delivered == 2
        with sessions() as session:
            rows = session.execute(select(AlertHistory)).scalars().all()
            assert {r.subscription_id for r in rows} == {1, 3}
            assert all(r.is_read is False for r in rows)

    def test_stored_regions_are_normalized(self, sessions, alert_factory):
        with sessions() as session:
            sub = SubscriptionRepository(session).create("sur", regiones=["arequipa ", "Cusco"])
            assert sub.regiones == ["AREQUIPA", "CUSCO"]

        assert SubscriptionDistributor(sessions).distribute([alert_factory(region="cusco")]) == 1

    def test_repeated_alert_not_delivered_twice(self, sessions, alert_factory):
        with sessions() as session:
            SubscriptionRepository(session).create("todo")

        distributor = SubscriptionDistributor(sessions)
        assert distributor.distribute([alert_factory()]) == 1
        assert distributor.distribute([alert_factory()]) == 0

        # Same title but a different publication date is a new alert
        other = alert_factory(fecha_publicacion=alert_factory().fecha_publicacion.replace(day=2))
        assert distributor.distribute([other]) == 1

    def test_long_titles_deduplicated_on_stored_prefix(self, sessions, alert_factory):
        with sessions() as session:
            SubscriptionRepository(session).create("todo")

        alert = alert_factory(titulo="x" * 800)
        distributor = SubscriptionDistributor(sessions)
        assert distributor.distribute([alert]) == 1
        assert distributor.distribute([alert]) == 0
