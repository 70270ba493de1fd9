"""
Normalized records produced by the source jobs.

Provides a clean interface between raw extraction and persistence:
alerts handed to distribution and tender records upserted by
nomenclature.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, TypeVar

from ..config.heuristics import PERU_REGIONS
from .parsing import normalize_whitespace, parse_date

T = TypeVar("T")


@dataclass
class NormalizedAlert:
    """A source item ready for distribution to subscriptions."""

    titulo: str
    contenido: str
    fuente: str
    fecha_publicacion: datetime
    tipo: str
    url_origen: str | None = None
    region: str | None = None
    entidad: str | None = None
    monto: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["fecha_publicacion"] = self.fecha_publicacion.isoformat()
        return data


@dataclass
class StageEntry:
    """One schedule row as read from the page.

    The raw strings are kept for alert content; the parsed datetimes are
    what gets persisted.
    """

    name: str
    start_raw: str = ""
    end_raw: str = ""

    @property
    def start_date(self) -> datetime | None:
        return parse_date(self.start_raw).value if self.start_raw else None

    @property
    def end_date(self) -> datetime | None:
        return parse_date(self.end_raw).value if self.end_raw else None


@dataclass
class TenderRecord:
    """A procurement procedure read from the authenticated results grid."""

    nomenclatura: str
    objeto: str = ""
    entidad: str = ""
    tipo_seleccion: str = ""
    url: str | None = None
    row_index: int | None = None
    stages: list[StageEntry] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.nomenclatura or "Procedimiento SEACE"

    def to_dict(self) -> dict[str, Any]:
        return {
            "nomenclatura": self.nomenclatura,
            "objeto": self.objeto,
            "entidad": self.entidad,
            "tipo_seleccion": self.tipo_seleccion,
            "url": self.url,
            "row_index": self.row_index,
            "stages": [
                {"name": s.name, "start": s.start_raw, "end": s.end_raw}
                for s in self.stages
            ],
        }


# =============================================================================
# Helpers
# =============================================================================


def dedupe_by_title(
    items: Iterable[T],
    *,
    key: Callable[[T], str],
    prefix: int = 50,
) -> list[T]:
    """Keep the first item for each normalized title prefix.

    Args:
        items: Items in priority order
        key: Returns the title of an item
        prefix: Number of leading characters compared

    Returns:
        Items whose lower-cased, whitespace-collapsed title prefix was
        not seen before
    """
    seen: set[str] = set()
    unique: list[T] = []
    for item in items:
        marker = normalize_whitespace(key(item)).lower()[:prefix]
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


def extract_region(entidad: str | None, regions: Iterable[str] = PERU_REGIONS) -> str | None:
    """Return the first region name contained in an entity name."""
    if not entidad:
        return None
    upper = entidad.upper()
    for region in regions:
        if region in upper:
            return region
    return None


def format_soles(amount: float | None) -> str:
    """Format an amount the way the portals print soles (``1,250,000.00``)."""
    return f"{amount or 0:,.2f}"


def build_tender_alert(record: TenderRecord, now: datetime | None = None) -> NormalizedAlert:
    """Turn a tender record into the LICITACION alert sent to subscribers."""
    schedule = "\n".join(
        f"- {stage.name}: {stage.start_raw} - {stage.end_raw}" for stage in record.stages
    )
    contenido = f"{record.objeto}\n\nEntidad: {record.entidad}\n\nCronograma:\n{schedule}"

    return NormalizedAlert(
        titulo=record.title,
        contenido=contenido,
        fuente="SEACE",
        fecha_publicacion=now or datetime.utcnow(),
        tipo="LICITACION",
        url_origen=record.url,
        entidad=record.entidad or None,
    )
