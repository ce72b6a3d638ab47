"""Command-line interface for catalog indexing, loading and search.

Usage:
    python -m FundCatalog.SearchIndex search "hdfc mid" --source catalog.json --category "Mid Cap"
    python -m FundCatalog.SearchIndex load-batch catalog.json state/ --batch-size 500
    python -m FundCatalog.SearchIndex status catalog.json state/
    python -m FundCatalog.SearchIndex search "liquid" --state-dir state/
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer

from .api import entity_to_json, facets_to_json
from .config import FundSearchConfig, FundSearchConfigManager
from .index import FundIndex
from .ingest import CatalogIngestionPipeline
from .loader import CheckpointedLoader
from .logging_utils import configure_logging
from .observability import Observability
from .service import FundSearchService, RequestValidationError
from .storage import CheckpointStorageError, CheckpointStore
from .streaming import IngestError
from .types import LoaderProgress, SearchFilters

__all__ = ("app",)

logger = logging.getLogger("FundCatalog.SearchIndex")
app = typer.Typer(help="Index and search a mutual-fund catalog", no_args_is_help=True)


@dataclass
class _CliState:
    config: FundSearchConfig
    observability: Observability


def _state(ctx: typer.Context) -> _CliState:
    state = ctx.obj
    if not isinstance(state, _CliState):
        state = _CliState(config=FundSearchConfig(), observability=Observability())
        ctx.obj = state
    return state


def _emit(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _fail(message: str) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    raise typer.Exit(1)


def _progress_payload(progress: LoaderProgress) -> Dict[str, Any]:
    return {
        "state": progress.state.value,
        "processed": progress.processed,
        "total": progress.total,
        "totalIsExact": progress.total_is_exact,
        "isComplete": progress.is_complete,
        "progress": progress.progress,
        "batch": [entity.scheme_code for entity in progress.batch],
        "errors": [entry.to_dict() for entry in progress.errors],
    }


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="JSON or YAML configuration file", exists=True, dir_okay=False
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    """Index and search a mutual-fund catalog."""

    configure_logging(log_level)
    try:
        loaded = FundSearchConfigManager(config).get() if config else FundSearchConfig()
    except (OSError, ValueError, TypeError) as exc:
        _fail(f"invalid configuration: {exc}")
    ctx.obj = _CliState(config=loaded, observability=Observability(logger=logger))


def _build_service(state: _CliState, source: Optional[Path], state_dir: Optional[Path]) -> FundSearchService:
    if (source is None) == (state_dir is None):
        _fail("pass exactly one of --source or --state-dir")
    index = FundIndex()
    try:
        if source is not None:
            CatalogIngestionPipeline(
                index, config=state.config, observability=state.observability
            ).ingest_path(source)
        else:
            _, entities = CheckpointStore(state_dir).load()
            index.index_many(entities, on_conflict="skip")
    except (IngestError, CheckpointStorageError) as exc:
        _fail(str(exc))
    return FundSearchService(index, config=state.config.query, observability=state.observability)


@app.command()
def search(
    ctx: typer.Context,
    text: Optional[str] = typer.Argument(None, help="Free-text query"),
    source: Optional[Path] = typer.Option(None, "--source", help="Catalog JSON to index in memory"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Checkpointed loader state"),
    fund_house: Optional[List[str]] = typer.Option(None, "--fund-house", help="Fund house filter"),
    category: Optional[List[str]] = typer.Option(None, "--category", help="Category or sub-category"),
    plan: Optional[List[str]] = typer.Option(None, "--plan", help="Direct or Regular"),
    risk_tier: Optional[List[int]] = typer.Option(None, "--risk-tier", help="Ordinal risk tier"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Page size"),
    offset: int = typer.Option(0, "--offset", help="Results to skip"),
) -> None:
    """Search the catalog and print one page of results as JSON."""

    state = _state(ctx)
    service = _build_service(state, source, state_dir)
    filters = SearchFilters(
        text=text,
        fund_houses=fund_house or [],
        categories=category or [],
        plans=plan or [],
        risk_tiers=risk_tier or [],
        offset=offset,
        limit=limit,
    )
    try:
        result = service.search(filters)
    except RequestValidationError as exc:
        _fail(str(exc))
    _emit(
        {
            "funds": [
                {**entity_to_json(fund), "score": score}
                for fund, score in zip(result.funds, result.scores)
            ],
            "total": result.total,
            "hasMore": result.has_more,
            "searchTime": round(result.search_time_ms, 3),
            "facets": facets_to_json(result.facets),
        }
    )


@app.command()
def suggest(
    ctx: typer.Context,
    prefix: str = typer.Argument(..., help="Partially typed query"),
    source: Optional[Path] = typer.Option(None, "--source"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir"),
    limit: int = typer.Option(10, "--limit"),
) -> None:
    """Print autocomplete suggestions."""

    service = _build_service(_state(ctx), source, state_dir)
    try:
        _emit({"suggestions": service.suggest(prefix, limit=limit)})
    except RequestValidationError as exc:
        _fail(str(exc))


@app.command()
def analytics(
    ctx: typer.Context,
    source: Optional[Path] = typer.Option(None, "--source"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir"),
) -> None:
    """Print per-category and per-fund-house counts."""

    summary = _build_service(_state(ctx), source, state_dir).analytics()
    _emit(
        {
            "totalFunds": summary.total_funds,
            "categories": dict(summary.categories),
            "fundHouses": dict(summary.fund_houses),
            "topFundHouses": [list(item) for item in summary.top_fund_houses],
        }
    )


def _loader(state: _CliState, source: Path, state_dir: Path) -> CheckpointedLoader:
    try:
        return CheckpointedLoader(
            source, state_dir, config=state.config, observability=state.observability
        )
    except CheckpointStorageError as exc:
        _fail(str(exc))


@app.command("load-batch")
def load_batch(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Catalog JSON array"),
    state_dir: Path = typer.Argument(..., help="Loader state directory"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
) -> None:
    """Process the next batch of the checkpointed build."""

    loader = _loader(_state(ctx), source, state_dir)
    try:
        progress = loader.process_next_batch(batch_size)
    except (IngestError, CheckpointStorageError) as exc:
        _fail(str(exc))
    _emit(_progress_payload(progress))


@app.command()
def status(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Catalog JSON array"),
    state_dir: Path = typer.Argument(..., help="Loader state directory"),
) -> None:
    """Print the committed progress of the checkpointed build."""

    stats = _loader(_state(ctx), source, state_dir).statistics()
    _emit(
        {
            "state": stats.state.value,
            "totalFunds": stats.total_funds,
            "processedFunds": stats.processed_funds,
            "indexedFunds": stats.indexed_funds,
            "failedFunds": stats.failed_funds,
            "progress": stats.progress,
            "categories": dict(stats.categories),
            "fundHouses": dict(stats.fund_houses),
            "lastUpdated": stats.last_updated,
        }
    )


@app.command()
def retry(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Catalog JSON array"),
    state_dir: Path = typer.Argument(..., help="Loader state directory"),
    scheme_code: Optional[List[int]] = typer.Option(None, "--scheme-code", help="Codes to retry"),
) -> None:
    """Re-process records recorded in the loader error log."""

    loader = _loader(_state(ctx), source, state_dir)
    try:
        progress = loader.retry_failed(scheme_code or None)
    except (IngestError, CheckpointStorageError) as exc:
        _fail(str(exc))
    _emit(_progress_payload(progress))


@app.command()
def reset(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Catalog JSON array"),
    state_dir: Path = typer.Argument(..., help="Loader state directory"),
    yes: bool = typer.Option(False, "--yes", help="Confirm deletion of the loader state"),
) -> None:
    """Delete the checkpoint and entity store so the next build starts fresh."""

    if not yes:
        _fail("refusing to delete loader state without --yes")
    loader = _loader(_state(ctx), source, state_dir)
    try:
        loader.reset()
    except CheckpointStorageError as exc:
        _fail(str(exc))
    _emit({"state": loader.state.value})


if __name__ == "__main__":  # pragma: no cover
    app()
