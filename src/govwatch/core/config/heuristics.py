"""
Vocabularies and thresholds for heuristic extraction.

The source portals publish non-semantic markup, so the extractors lean on
keyword lists and regex shapes instead of a fixed schema. All of them are
collected here and exposed through ``HeuristicsConfig`` so they can be tuned
from ``configs/app.yaml`` without touching extractor code.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# =============================================================================
# Tender schedule (cronograma) stages
# =============================================================================

VALID_STAGE_NAMES: list[str] = [
    "convocatoria",
    "registro de participantes",
    "formulación de consultas",
    "formulacion de consultas",
    "absolución de consultas",
    "absolucion de consultas",
    "integración de las bases",
    "integracion de las bases",
    "presentación de propuestas",
    "presentacion de propuestas",
    "presentación de ofertas",
    "presentacion de ofertas",
    "calificación y evaluación",
    "calificacion y evaluacion",
    "evaluación de propuestas",
    "evaluacion de propuestas",
    "otorgamiento de la buena pro",
    "buena pro",
    "publicación de bases",
    "publicacion de bases",
    "apertura de sobres",
    "adjudicación",
    "adjudicacion",
    "fecha y hora de publicación",
    "fecha y hora de publicacion",
]

# Address and note fragments that show up inside schedule tables
INVALID_STAGE_PHRASES: list[str] = [
    "en la oficina",
    "en el local",
    "sito en",
    "ubicado en",
    "el procedimiento de selección",
    "el procedimiento de seleccion",
    "se encuentra en la etapa",
    "av.",
    "avenida",
    "calle",
    "jr.",
    "jirón",
    "jiron",
    "pasaje",
    "n°",
    "n °",
    "nro",
    "numero",
    "número",
]

STAGE_BULLET_PREFIXES: tuple[str, ...] = ("-", "•", "*")

# Header labels of the schedule table
STAGE_HEADER_LABELS: dict[str, list[str]] = {
    "stage": ["etapa"],
    "start": ["fecha inicio", "inicio"],
    "end": ["fecha fin", "fin"],
}

# Key dates derived from stage names
KEY_DATE_STAGES: dict[str, list[str]] = {
    "fecha_convocatoria": ["convocatoria"],
    "fecha_presentacion": ["presentación", "presentacion", "propuesta"],
    "fecha_buena_pro": ["buena pro", "otorgamiento"],
}


# =============================================================================
# Results grid
# =============================================================================

NOMENCLATURE_PATTERN = r"^[A-Z]{2,3}-[A-Z]{2,4}-\d+-\d{4}"

INSTITUTION_KEYWORDS: list[str] = [
    "SUNAT",
    "SUPERINTENDENCIA",
    "MINISTERIO",
    "GOBIERNO",
]

SELECTION_TYPE_KEYWORDS: list[str] = [
    "ADJUDICACI",
    "SUBASTA",
    "LICITACI",
    "CONCURSO",
]

SCRIPT_NOISE_TOKENS: list[str] = ["function", "javascript"]


# =============================================================================
# Geography and language
# =============================================================================

PERU_REGIONS: list[str] = [
    "AMAZONAS", "ANCASH", "APURIMAC", "AREQUIPA", "AYACUCHO", "CAJAMARCA",
    "CALLAO", "CUSCO", "HUANCAVELICA", "HUANUCO", "ICA", "JUNIN",
    "LA LIBERTAD", "LAMBAYEQUE", "LIMA", "LORETO", "MADRE DE DIOS",
    "MOQUEGUA", "PASCO", "PIURA", "PUNO", "SAN MARTIN", "TACNA", "TUMBES",
    "UCAYALI",
]

SPANISH_MONTHS: dict[str, int] = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}


class HeuristicsConfig(BaseModel):
    """Tunable vocabularies and thresholds used by the extractors."""

    valid_stage_names: list[str] = Field(default_factory=lambda: list(VALID_STAGE_NAMES))
    invalid_stage_phrases: list[str] = Field(default_factory=lambda: list(INVALID_STAGE_PHRASES))
    max_stage_name_length: int = Field(default=80, ge=10)
    stage_name_truncate: int = Field(default=100, ge=10)

    nomenclature_pattern: str = NOMENCLATURE_PATTERN
    institution_keywords: list[str] = Field(default_factory=lambda: list(INSTITUTION_KEYWORDS))
    selection_type_keywords: list[str] = Field(default_factory=lambda: list(SELECTION_TYPE_KEYWORDS))
    min_entity_length: int = Field(default=20, ge=0)
    min_object_length: int = Field(default=30, ge=0)
    max_cell_length: int = Field(default=500, ge=50)

    regions: list[str] = Field(default_factory=lambda: list(PERU_REGIONS))
    header_fuzzy_threshold: int = Field(
        default=90,
        ge=50,
        le=100,
        description="Minimum fuzzy score for a schedule header label",
    )


def find_key_date_field(stage_name: str) -> str | None:
    """Return the tender key-date field a stage name feeds, if any."""
    lowered = stage_name.lower()
    for field_name, needles in KEY_DATE_STAGES.items():
        if any(needle in lowered for needle in needles):
            return field_name
    return None
