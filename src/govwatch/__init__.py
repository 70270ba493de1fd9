"""
GovWatch - Government portal alert scraper and orchestrator.

Collects tender notices and regulatory bulletins from Peruvian government
portals (SEACE, OSCE, SUNAT), normalizes them into alerts, and keeps a
live, observable log of every scraping session.
"""

__version__ = "0.1.0"
__app_name__ = "govwatch"
