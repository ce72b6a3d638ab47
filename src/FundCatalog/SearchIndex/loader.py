# === NAVMAP v1 ===
# {
#   "module": "FundCatalog.SearchIndex.loader",
#   "purpose": "Resumable batch-by-batch catalog indexing with durable checkpoints",
#   "sections": [
#     {"id": "loaderstatistics", "name": "LoaderStatistics", "anchor": "class-loaderstatistics", "kind": "class"},
#     {"id": "checkpointedloader", "name": "CheckpointedLoader", "anchor": "class-checkpointedloader", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""
Checkpointed catalog loader.

:class:`CheckpointedLoader` turns a full catalog build into a sequence of
bounded, externally triggered batches. Each call to
:meth:`CheckpointedLoader.process_next_batch` resumes the source stream at the
committed byte offset, classifies and indexes up to ``batch_size`` new records,
and commits the new entities plus the updated checkpoint through
:class:`~FundCatalog.SearchIndex.storage.CheckpointStore` before they become
visible in the in-memory index. A process that dies mid-batch loses only the
uncommitted batch; the next loader constructed on the same state directory
picks up from the last commit.

Lifecycle::

    NOT_STARTED -> RUNNING -> RUNNING (next batch) | COMPLETE

Records that fail validation or the optional enrichment hook are written to
the checkpoint error log and do not stop the batch. They are only retried when
:meth:`CheckpointedLoader.retry_failed` is called.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .classifier import FundClassifier
from .config import FundSearchConfig
from .index import FundIndex
from .observability import Observability
from .storage import CheckpointStore
from .streaming import CatalogStream, IngestError, StreamReadError
from .types import (
    FundEntity,
    LoaderCheckpoint,
    LoaderErrorEntry,
    LoaderProgress,
    LoaderState,
    RawFundRecord,
    RecordValidationError,
    StreamCursor,
)

__all__ = ("CheckpointedLoader", "Enricher", "LoaderStatistics")

Enricher = Callable[[FundEntity], FundEntity]


@dataclass(slots=True)
class LoaderStatistics:
    """Snapshot of a checkpointed build for status displays.

    Attributes:
        total_funds: Estimated or exact number of records in the source.
        processed_funds: Records consumed so far.
        indexed_funds: Entities currently in the index.
        failed_funds: Entries in the error log.
        progress: Percentage processed.
        state: Loader lifecycle state.
        categories: Indexed entity count per top-level category.
        fund_houses: Indexed entity count per fund house.
        last_updated: Timestamp of the last commit, if any.
    """

    total_funds: int
    processed_funds: int
    indexed_funds: int
    failed_funds: int
    progress: float
    state: LoaderState
    categories: Mapping[str, int] = field(default_factory=dict)
    fund_houses: Mapping[str, int] = field(default_factory=dict)
    last_updated: Optional[str] = None


@dataclass(slots=True)
class _BatchOutcome:
    entities: List[FundEntity] = field(default_factory=list)
    errors: Dict[Optional[int], LoaderErrorEntry] = field(default_factory=dict)
    anonymous_errors: List[LoaderErrorEntry] = field(default_factory=list)
    resolved: Set[int] = field(default_factory=set)

    def recorded_errors(self) -> List[LoaderErrorEntry]:
        return [*self.errors.values(), *self.anonymous_errors]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CheckpointedLoader:
    """Resumable, batch-driven catalog indexer backed by a state directory.

    Args:
        source: Path of the JSON catalog array.
        state_dir: Directory holding the checkpoint and entity store.
        index: Index to populate; a new one is created when omitted. Entities
            already committed in ``state_dir`` are loaded into it.
        config: Stream, index and loader settings.
        enricher: Optional per-entity hook; exceptions it raises are recorded
            in the error log for that record.
        observability: Metrics and logging facade.

    Raises:
        CheckpointStorageError: If the existing state cannot be loaded.

    Examples:
        >>> loader = CheckpointedLoader(Path("catalog.json"), Path("state"))  # doctest: +SKIP
        >>> progress = loader.process_next_batch(100)  # doctest: +SKIP
        >>> progress.is_complete  # doctest: +SKIP
        False
    """

    def __init__(
        self,
        source: Path,
        state_dir: Path,
        *,
        index: Optional[FundIndex] = None,
        config: Optional[FundSearchConfig] = None,
        enricher: Optional[Enricher] = None,
        observability: Optional[Observability] = None,
    ) -> None:
        self._source = Path(source)
        self._config = config or FundSearchConfig()
        self._store = CheckpointStore(state_dir, lock_timeout_s=self._config.loader.lock_timeout_s)
        self._classifier = FundClassifier(self._config.index)
        self._enricher = enricher
        self._observability = observability or Observability()
        self._index = index if index is not None else FundIndex()
        self._checkpoint = LoaderCheckpoint()
        self._load_state()

    # --- Accessors ---

    @property
    def index(self) -> FundIndex:
        return self._index

    @property
    def checkpoint(self) -> LoaderCheckpoint:
        return self._checkpoint

    @property
    def state(self) -> LoaderState:
        return self._checkpoint.state

    @property
    def store(self) -> CheckpointStore:
        return self._store

    def progress(self) -> LoaderProgress:
        """Progress of the committed state without processing anything."""

        return self._progress((), ())

    # --- Operations ---

    def process_next_batch(self, batch_size: Optional[int] = None) -> LoaderProgress:
        """Process up to ``batch_size`` not-yet-processed records and commit them.

        Records whose scheme code is already indexed are skipped and do not
        count toward the batch. The returned progress lists the entities
        indexed by this call.

        Args:
            batch_size: Records to process; defaults to ``LoaderConfig.batch_size``.

        Returns:
            LoaderProgress after the commit.

        Raises:
            ValueError: If ``batch_size`` is not positive.
            StreamReadError: If the source cannot be read; nothing is committed.
            CheckpointStorageError: If the commit fails; the previous
                checkpoint stays valid.
            LoaderBusyError: If another process owns the state directory.
        """
        size = self._config.loader.batch_size if batch_size is None else batch_size
        if size <= 0:
            raise ValueError("batch_size must be positive")
        with self._store.exclusive():
            self._sync_with_store()
            checkpoint = self._checkpoint
            if checkpoint.state is LoaderState.COMPLETE:
                return self._progress((), ())
            with self._observability.trace("loader_batch"):
                return self._run_batch(checkpoint, size)

    def retry_failed(self, scheme_codes: Optional[Iterable[int]] = None) -> LoaderProgress:
        """Re-process error-logged records from the already consumed part of the source.

        Args:
            scheme_codes: Codes to retry; every logged code when omitted.

        Returns:
            LoaderProgress whose ``batch`` holds the records that now succeeded.
            The processed count is unchanged.
        """
        with self._store.exclusive():
            self._sync_with_store()
            checkpoint = self._checkpoint
            wanted = None if scheme_codes is None else set(scheme_codes)
            targets = {
                entry.scheme_code
                for entry in checkpoint.errors
                if entry.scheme_code is not None
                and (wanted is None or entry.scheme_code in wanted)
            }
            if not targets:
                return self._progress((), ())
            outcome = _BatchOutcome()
            limit = checkpoint.cursor.byte_offset
            with self._open_source() as handle:
                stream = CatalogStream(
                    handle, chunk_size=self._config.stream.chunk_size, source=str(self._source)
                )
                for ordinal, item in enumerate(stream, start=1):
                    if item.start_offset >= limit:
                        break
                    code = _payload_code(item.payload)
                    if code not in targets or code in self._index:
                        continue
                    targets.discard(code)
                    self._process_payload(item.payload, ordinal, outcome, seen=set())
                    if not targets:
                        break
            remaining = [
                entry
                for entry in checkpoint.errors
                if entry.scheme_code not in outcome.resolved
                and entry.scheme_code not in outcome.errors
            ]
            errors = tuple(remaining) + tuple(outcome.recorded_errors())
            updated = replace(checkpoint, errors=errors, updated_at=_utc_now())
            return self._commit(updated, outcome, event="loader-retry-committed")

    def statistics(self) -> LoaderStatistics:
        """Summarize the committed build."""

        checkpoint = self._checkpoint
        progress = self._progress((), ())
        return LoaderStatistics(
            total_funds=checkpoint.total_records,
            processed_funds=checkpoint.processed_count,
            indexed_funds=self._index.count(),
            failed_funds=len(checkpoint.errors),
            progress=progress.progress,
            state=checkpoint.state,
            categories=self._index.category_counts(),
            fund_houses=self._index.fund_house_counts(),
            last_updated=checkpoint.updated_at,
        )

    def reset(self) -> None:
        """Delete the persisted state and start over with an empty index.

        The previous index object is left untouched; read :attr:`index` again
        after a reset.
        """
        with self._store.exclusive():
            self._store.reset()
            self._checkpoint = LoaderCheckpoint()
            self._index = FundIndex()
        self._observability.logger.info(
            "loader-reset", extra={"event": {"state_dir": str(self._store.state_dir)}}
        )

    # --- Internal helpers ---

    def _load_state(self) -> None:
        checkpoint, entities = self._store.load()
        self._index.index_many(entities, on_conflict="skip")
        self._checkpoint = checkpoint
        if checkpoint.source and checkpoint.source != str(self._source):
            self._observability.logger.warning(
                "loader-source-changed",
                extra={"event": {"checkpoint_source": checkpoint.source, "source": str(self._source)}},
            )

    def _sync_with_store(self) -> None:
        checkpoint = self._store.read_checkpoint()
        known = self._checkpoint
        if checkpoint == known:
            return
        # Another process committed or reset since this loader last looked.
        if checkpoint.entity_count < known.entity_count or checkpoint.entity_bytes < known.entity_bytes:
            self._index = FundIndex()
            entities = self._store.read_entities(checkpoint)
        else:
            entities = self._store.read_entities(checkpoint, after=known)
        self._index.index_many(entities, on_conflict="skip")
        self._checkpoint = checkpoint

    def _open_source(self) -> BinaryIO:
        try:
            return self._source.open("rb")
        except OSError as exc:
            raise StreamReadError(f"Cannot open catalog {self._source}: {exc}") from exc

    def _source_size(self) -> int:
        try:
            return self._source.stat().st_size
        except OSError as exc:
            raise StreamReadError(f"Cannot stat catalog {self._source}: {exc}") from exc

    def _run_batch(self, checkpoint: LoaderCheckpoint, size: int) -> LoaderProgress:
        source_size = self._source_size()
        cursor = checkpoint.cursor
        if cursor.byte_offset > source_size:
            raise IngestError(
                f"Catalog {self._source} is shorter ({source_size} bytes) than the "
                f"committed cursor ({cursor.byte_offset} bytes); reset the loader state"
            )
        ordinal = cursor.ordinal
        byte_offset = cursor.byte_offset
        counted = 0
        reached_end = False
        outcome = _BatchOutcome()
        seen: Set[int] = set()
        with self._open_source() as handle:
            try:
                handle.seek(byte_offset)
            except OSError as exc:
                raise StreamReadError(f"Cannot seek catalog {self._source}: {exc}") from exc
            stream = CatalogStream(
                handle,
                chunk_size=self._config.stream.chunk_size,
                start_offset=byte_offset,
                source=str(self._source),
            )
            items = iter(stream)
            for item in items:
                ordinal += 1
                byte_offset = item.end_offset
                if self._process_payload(item.payload, ordinal, outcome, seen=seen):
                    counted += 1
                if counted >= size:
                    break
            else:
                reached_end = True
            if not reached_end:
                # One object of lookahead tells whether the source is exhausted.
                reached_end = next(items, None) is None

        consumed = ordinal - cursor.ordinal
        if consumed == 0 and not reached_end:
            return self._progress((), ())

        estimate_after = self._config.loader.estimate_after
        if reached_end:
            total, exact = ordinal, True
        elif ordinal > estimate_after and byte_offset > 0:
            total = max(ordinal + 1, round(ordinal * source_size / byte_offset))
            exact = False
        else:
            total, exact = max(checkpoint.total_records, ordinal + 1), False

        merged_errors = {entry.scheme_code: entry for entry in checkpoint.errors if entry.scheme_code is not None}
        merged_errors.update({code: entry for code, entry in outcome.errors.items() if code is not None})
        anonymous = [entry for entry in checkpoint.errors if entry.scheme_code is None]
        anonymous.extend(outcome.anonymous_errors)

        updated = replace(
            checkpoint,
            total_records=total,
            total_is_exact=exact,
            processed_count=ordinal,
            cursor=StreamCursor(ordinal=ordinal, byte_offset=byte_offset),
            errors=tuple(merged_errors.values()) + tuple(anonymous),
            source=str(self._source),
            updated_at=_utc_now(),
        )
        return self._commit(updated, outcome, event="loader-batch-committed")

    def _process_payload(
        self,
        payload: Any,
        ordinal: int,
        outcome: _BatchOutcome,
        *,
        seen: Set[int],
    ) -> bool:
        """Classify one decoded object; return ``True`` when it counts toward the batch."""

        metrics = self._observability.metrics
        try:
            record = RawFundRecord.from_mapping(payload)
        except RecordValidationError as exc:
            self._record_failure(outcome, _payload_code(payload), f"invalid record: {exc}", ordinal)
            return True
        code = record.scheme_code
        if code in self._index or code in seen:
            metrics.increment("loader_records_skipped")
            return False
        seen.add(code)
        entity = self._classifier.classify(record)
        if self._enricher is not None:
            try:
                entity = self._enricher(entity)
            except Exception as exc:
                self._record_failure(outcome, code, f"{type(exc).__name__}: {exc}", ordinal)
                return True
        outcome.entities.append(entity)
        outcome.resolved.add(code)
        return True

    def _record_failure(
        self, outcome: _BatchOutcome, code: Optional[int], reason: str, ordinal: int
    ) -> None:
        entry = LoaderErrorEntry(scheme_code=code, reason=reason, ordinal=ordinal, recorded_at=_utc_now())
        if code is None:
            outcome.anonymous_errors.append(entry)
        else:
            outcome.errors[code] = entry
        self._observability.metrics.increment("loader_records_failed")
        self._observability.logger.warning(
            "loader-record-failed",
            extra={"event": {"scheme_code": code, "ordinal": ordinal, "reason": reason}},
        )

    def _commit(self, checkpoint: LoaderCheckpoint, outcome: _BatchOutcome, *, event: str) -> LoaderProgress:
        if outcome.resolved:
            checkpoint = replace(
                checkpoint,
                errors=tuple(
                    entry for entry in checkpoint.errors if entry.scheme_code not in outcome.resolved
                ),
            )
        committed = self._store.commit(checkpoint, outcome.entities)
        self._index.index_many(outcome.entities, on_conflict="skip")
        self._checkpoint = committed
        self._observability.metrics.increment("catalog_records_indexed", float(len(outcome.entities)), mode="checkpointed")
        self._observability.logger.info(
            event,
            extra={
                "event": {
                    "processed": committed.processed_count,
                    "total": committed.total_records,
                    "total_is_exact": committed.total_is_exact,
                    "indexed": len(outcome.entities),
                    "failed": len(outcome.recorded_errors()),
                    "state": committed.state.value,
                }
            },
        )
        return self._progress(outcome.entities, outcome.recorded_errors())

    def _progress(
        self, batch: Iterable[FundEntity], errors: Iterable[LoaderErrorEntry]
    ) -> LoaderProgress:
        checkpoint = self._checkpoint
        state = checkpoint.state
        return LoaderProgress(
            processed=checkpoint.processed_count,
            total=checkpoint.total_records,
            total_is_exact=checkpoint.total_is_exact,
            is_complete=state is LoaderState.COMPLETE,
            state=state,
            batch=tuple(batch),
            errors=tuple(errors),
        )


def _payload_code(payload: Any) -> Optional[int]:
    if not isinstance(payload, Mapping):
        return None
    value = payload.get("schemeCode")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None

