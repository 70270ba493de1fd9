"""Tests for date, money and text normalization."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from govwatch.core.normalize.parsing import (
    extract_cell_date,
    looks_like_date,
    normalize_whitespace,
    parse_date,
    parse_date_or_now,
    parse_money,
)
from govwatch.core.normalize.records import (
    StageEntry,
    TenderRecord,
    build_tender_alert,
    dedupe_by_title,
    extract_region,
    format_soles,
)


class TestParseDate:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("15/03/2024", datetime(2024, 3, 15)),
            ("5-3-2024", datetime(2024, 3, 5)),
            ("15/03/2024 14:30", datetime(2024, 3, 15, 14, 30)),
            ("15/03/2024 09:05:10", datetime(2024, 3, 15, 9, 5, 10)),
            ("2024-03-15", datetime(2024, 3, 15)),
            ("2024-03-15T08:00", datetime(2024, 3, 15, 8, 0)),
            ("Lima, 7 de setiembre de 2023", datetime(2023, 9, 7)),
            ("12 DE ENERO DE 2024", datetime(2024, 1, 12)),
        ],
    )
    def test_portal_formats(self, text, expected):
        assert parse_date(text).value == expected

    def test_day_first_is_preferred(self):
        assert parse_date("02/01/2024").value == datetime(2024, 1, 2)

    def test_time_raises_confidence(self):
        assert parse_date("15/03/2024 14:30").confidence > parse_date("15/03/2024").confidence

    def test_empty_and_none(self):
        assert parse_date(None).value is None
        assert parse_date("   ").value is None

    def test_datetime_and_date_passthrough(self):
        now = datetime(2024, 1, 1, 10)
        assert parse_date(now).value == now
        assert parse_date(date(2024, 1, 1)).value == datetime(2024, 1, 1)

    def test_unparseable_defaults_to_now(self):
        now = datetime(2024, 6, 1)
        assert parse_date_or_now("xyz", now) == now
        assert parse_date_or_now("01/02/2024", now) == datetime(2024, 2, 1)

    @pytest.mark.parametrize("text", ["hace", "hace 3 días", "ayer", "2024", "marzo 2024"])
    def test_loose_text_is_not_a_date(self, text):
        now = datetime(2024, 6, 1)
        assert parse_date(text).value is None
        assert parse_date_or_now(text, now) == now

    def test_complete_named_month_dates_still_parse(self):
        assert parse_date("15 marzo 2024").value == datetime(2024, 3, 15)


class TestCellDates:
    def test_extract_cell_date_keeps_time(self):
        assert extract_cell_date("Del 10/05/2024 08:00 (hora local)") == "10/05/2024 08:00"
        assert extract_cell_date("sin fecha") == ""
        assert extract_cell_date(None) == ""

    def test_looks_like_date_requires_leading_date(self):
        assert looks_like_date(" 10/05/2024 08:00")
        assert not looks_like_date("Hasta el 10/05/2024")
        assert not looks_like_date("")


class TestParseMoney:
    @pytest.mark.parametrize(
        "text,amount,currency",
        [
            ("S/ 1,250,000.00", Decimal("1250000.00"), "PEN"),
            ("S/. 3,500", Decimal("3500"), "PEN"),
            ("US$ 1,000.50", Decimal("1000.50"), "USD"),
            ("USD 3.500,50", Decimal("3500.50"), "USD"),
            ("15000", Decimal("15000"), "PEN"),
        ],
    )
    def test_formats(self, text, amount, currency):
        parsed = parse_money(text)
        assert parsed.amount == amount
        assert parsed.currency == currency

    def test_missing_amount(self):
        assert parse_money("No especificado").amount is None
        assert parse_money(None).amount is None

    def test_numbers_pass_through(self):
        assert parse_money(12.5).amount == Decimal("12.5")


class TestRecords:
    def test_normalize_whitespace_handles_nbsp(self):
        assert normalize_whitespace("  a\xa0 b\n\tc ") == "a b c"
        assert normalize_whitespace(None) == ""

    def test_dedupe_by_title_prefix(self):
        titles = [
            "Resolución de Superintendencia N° 000123-2024/SUNAT aprueba",
            "RESOLUCIÓN DE SUPERINTENDENCIA N° 000123-2024/SUNAT   APRUEBA otra cosa",
            "Comunicado sobre declaraciones juradas",
        ]
        unique = dedupe_by_title(titles, key=lambda t: t, prefix=50)
        assert unique == [titles[0], titles[2]]

    def test_extract_region_from_entity(self):
        assert extract_region("GOBIERNO REGIONAL DE CUSCO") == "CUSCO"
        assert extract_region("Municipalidad de San Martin de Porres") == "SAN MARTIN"
        assert extract_region(None) is None
        assert extract_region("MINISTERIO DE SALUD") is None

    def test_format_soles(self):
        assert format_soles(1250000) == "1,250,000.00"
        assert format_soles(None) == "0.00"

    def test_tender_alert_lists_schedule(self):
        record = TenderRecord(
            nomenclatura="AS-SM-5-2024-SUNAT/8B",
            objeto="Servicio de mantenimiento",
            entidad="SUNAT",
            stages=[StageEntry("Convocatoria", "01/03/2024", "01/03/2024")],
        )
        alert = build_tender_alert(record, now=datetime(2024, 3, 2))

        assert alert.titulo == "AS-SM-5-2024-SUNAT/8B"
        assert alert.tipo == "LICITACION"
        assert alert.fuente == "SEACE"
        assert "- Convocatoria: 01/03/2024 - 01/03/2024" in alert.contenido
        assert alert.fecha_publicacion == datetime(2024, 3, 2)

    def test_stage_entry_parses_raw_dates(self):
        stage = StageEntry("Convocatoria", "01/03/2024 08:00", "")
        assert stage.start_date == datetime(2024, 3, 1, 8, 0)
        assert stage.end_date is None
