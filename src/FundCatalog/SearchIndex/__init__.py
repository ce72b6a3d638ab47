# === NAVMAP v1 ===
# {
#   "module": "FundCatalog.SearchIndex",
#   "purpose": "Fund catalog indexing and search public API facade",
#   "sections": []
# }
# === /NAVMAP ===

"""
FundCatalog.SearchIndex turns a large JSON array of mutual-fund schemes into an
in-memory, query-ready index and answers text and faceted searches over it.

Core modules and how they interrelate:

- ``streaming`` reads the catalog in bounded chunks and yields one decoded
  object at a time together with its exact byte span. Malformed objects are
  logged and skipped; read failures raise ``StreamReadError``.
- ``classifier`` maps every raw record to a ``FundEntity`` with ordered rule
  tables for fund house, category/sub-category, plan, option and risk tier.
- ``index`` owns ``FundIndex``: token, category and fund-house inverted
  indexes plus the entity registry, the sorted token vocabulary used for
  prefix lookups and per-length token lists used for fuzzy matching.
- ``service`` answers searches (candidate generation, filters, scoring,
  pagination), suggestions and analytics, and offers ``verify_pagination``.
- ``ingest`` is the live driver: stream, classify and index a whole catalog
  in one pass, last write wins.
- ``loader`` is the checkpointed driver: bounded batches whose progress and
  entities are committed through ``storage`` so a build survives restarts.
- ``api`` and ``cli`` expose the service as HTTP-style handlers and a Typer
  command-line tool. ``config``, ``observability`` and ``logging_utils``
  provide the ambient configuration, metrics and structured logging.
"""

from __future__ import annotations

# --- Globals ---

__all__ = (
    "CatalogIngestionPipeline",
    "CatalogStream",
    "CheckpointStorageError",
    "CheckpointedLoader",
    "FundClassifier",
    "FundEntity",
    "FundIndex",
    "FundSearchAPI",
    "FundSearchConfig",
    "FundSearchConfigManager",
    "FundSearchService",
    "IngestError",
    "LoaderBusyError",
    "LoaderProgress",
    "LoaderState",
    "Observability",
    "RawFundRecord",
    "RequestValidationError",
    "SearchFacets",
    "SearchFilters",
    "SearchResult",
    "StreamReadError",
    "classify",
    "verify_pagination",
)


# --- Re-exports ---

from .api import FundSearchAPI
from .classifier import FundClassifier, classify
from .config import FundSearchConfig, FundSearchConfigManager
from .index import FundIndex
from .ingest import CatalogIngestionPipeline
from .loader import CheckpointedLoader
from .observability import Observability
from .service import FundSearchService, RequestValidationError, verify_pagination
from .storage import CheckpointStorageError, LoaderBusyError
from .streaming import CatalogStream, IngestError, StreamReadError
from .types import (
    FundEntity,
    LoaderProgress,
    LoaderState,
    RawFundRecord,
    SearchFacets,
    SearchFilters,
    SearchResult,
)
