"""Source job implementations, one per government portal."""

from .base import SourceJob, SourceOutput, StaticSourceJob
from .osce import OsceSource
from .seace import DriverState, SeaceDriver, SeaceSource
from .seace_public import SeacePublicSource
from .sunat import SunatSource

__all__ = [
    "SourceJob",
    "SourceOutput",
    "StaticSourceJob",
    "OsceSource",
    "SunatSource",
    "SeacePublicSource",
    "SeaceSource",
    "SeaceDriver",
    "DriverState",
]
