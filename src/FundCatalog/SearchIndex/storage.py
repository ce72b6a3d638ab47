"""
Durable local storage for the checkpointed loader.

A state directory holds two files:

- ``checkpoint.json``: the :class:`LoaderCheckpoint`, replaced atomically
  (temporary file, fsync, rename) on every commit.
- ``entities.jsonl``: append-only entity store, one :class:`FundEntity` per
  line. The checkpoint records how many rows and bytes are committed.

A commit appends and fsyncs the new entity rows first and only then swaps in
the new checkpoint. A crash between the two steps leaves an uncommitted tail in
the entity store. Reads stop at the committed length and the next commit
truncates the tail, so the previous checkpoint stays valid. ``loader.lock``
is a ``filelock`` lock that gives one process exclusive write ownership of
the directory.
"""

from __future__ import annotations

import contextlib
import io
import json
import os
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Sequence, TextIO, Tuple

import jsonlines
from filelock import FileLock, Timeout

from .types import FundEntity, LoaderCheckpoint

__all__ = (
    "CheckpointStorageError",
    "CheckpointStore",
    "LoaderBusyError",
    "atomic_write",
)


class CheckpointStorageError(RuntimeError):
    """Raised when the loader state directory cannot be read or written."""


class LoaderBusyError(CheckpointStorageError):
    """Raised when another process holds the loader state directory lock."""


@contextlib.contextmanager
def atomic_write(path: Path) -> Iterator[TextIO]:
    """Write to a temporary file and atomically replace ``path`` on success."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex}")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


class CheckpointStore:
    """Checkpoint and entity store rooted at one state directory.

    Args:
        state_dir: Directory holding the loader state (created on demand).
        lock_timeout_s: Seconds to wait for the directory lock.

    Examples:
        >>> store = CheckpointStore(Path("/tmp/fund-state"))  # doctest: +SKIP
        >>> checkpoint, entities = store.load()  # doctest: +SKIP
    """

    CHECKPOINT_FILE = "checkpoint.json"
    ENTITIES_FILE = "entities.jsonl"
    LOCK_FILE = "loader.lock"

    def __init__(self, state_dir: Path, *, lock_timeout_s: float = 5.0) -> None:
        self._state_dir = Path(state_dir)
        self._lock_timeout_s = lock_timeout_s

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def checkpoint_path(self) -> Path:
        return self._state_dir / self.CHECKPOINT_FILE

    @property
    def entities_path(self) -> Path:
        return self._state_dir / self.ENTITIES_FILE

    @property
    def lock_path(self) -> Path:
        return self._state_dir / self.LOCK_FILE

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the state directory lock for the duration of the block.

        Raises:
            LoaderBusyError: If the lock is not acquired within the timeout.
        """
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CheckpointStorageError(f"Cannot create state directory {self._state_dir}: {exc}") from exc
        lock = FileLock(str(self.lock_path))
        try:
            lock.acquire(timeout=self._lock_timeout_s)
        except Timeout as exc:
            raise LoaderBusyError(
                f"Loader state {self._state_dir} is locked by another process"
            ) from exc
        try:
            yield
        finally:
            lock.release()

    def load(self) -> Tuple[LoaderCheckpoint, List[FundEntity]]:
        """Read the committed checkpoint and entities.

        Returns:
            The stored checkpoint (empty when none exists) and the committed
            entities in commit order.

        Raises:
            CheckpointStorageError: If a file cannot be read or is inconsistent.
        """
        checkpoint = self.read_checkpoint()
        entities = self.read_entities(checkpoint)
        return checkpoint, entities

    def read_checkpoint(self) -> LoaderCheckpoint:
        """Return the committed checkpoint, or an empty one when none exists."""

        path = self.checkpoint_path
        if not path.exists():
            return LoaderCheckpoint()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return LoaderCheckpoint.from_dict(payload)
        except OSError as exc:
            raise CheckpointStorageError(f"Cannot read checkpoint {path}: {exc}") from exc
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise CheckpointStorageError(f"Corrupt checkpoint {path}: {exc}") from exc

    def read_entities(
        self, checkpoint: LoaderCheckpoint, *, after: LoaderCheckpoint = LoaderCheckpoint()
    ) -> List[FundEntity]:
        """Return the rows committed by ``checkpoint`` that ``after`` had not committed.

        Only the bytes between ``after.entity_bytes`` and
        ``checkpoint.entity_bytes`` are read and decoded.
        """
        path = self.entities_path
        expected = checkpoint.entity_count - after.entity_count
        length = checkpoint.entity_bytes - after.entity_bytes
        if expected < 0 or length < 0:
            raise CheckpointStorageError(
                f"Entity store {path} shrank below a previously committed length"
            )
        if expected == 0:
            return []
        try:
            size = path.stat().st_size
            if size < checkpoint.entity_bytes:
                raise CheckpointStorageError(
                    f"Entity store {path} is shorter than its checkpoint "
                    f"({size} < {checkpoint.entity_bytes} bytes)"
                )
            # Bytes past the committed length belong to a commit that never
            # wrote its checkpoint; the next append truncates them.
            with path.open("rb") as handle:
                handle.seek(after.entity_bytes)
                committed = handle.read(length)
            # Rows end with b"\n" only; names may hold other Unicode line breaks.
            with jsonlines.Reader(io.BytesIO(committed)) as reader:
                entities = [FundEntity.from_dict(row) for row in reader]
        except OSError as exc:
            raise CheckpointStorageError(f"Cannot read entity store {path}: {exc}") from exc
        except (jsonlines.InvalidLineError, KeyError, TypeError, ValueError) as exc:
            raise CheckpointStorageError(f"Corrupt entity store {path}: {exc}") from exc
        if len(entities) != expected:
            raise CheckpointStorageError(
                f"Entity store {path} holds {len(entities)} new rows, "
                f"checkpoint expects {expected}"
            )
        return entities

    def commit(self, checkpoint: LoaderCheckpoint, entities: Sequence[FundEntity]) -> LoaderCheckpoint:
        """Durably append ``entities`` and then replace the checkpoint.

        The ``entity_count`` and ``entity_bytes`` of the returned checkpoint
        describe the entity store after the append.

        Raises:
            CheckpointStorageError: If either write fails. The previously
                committed checkpoint remains in place.
        """
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            entity_bytes = self._append_entities(entities, checkpoint.entity_bytes)
            committed = replace(
                checkpoint,
                entity_count=checkpoint.entity_count + len(entities),
                entity_bytes=entity_bytes,
            )
            with atomic_write(self.checkpoint_path) as handle:
                json.dump(committed.to_dict(), handle, indent=2, sort_keys=True)
        except OSError as exc:
            raise CheckpointStorageError(
                f"Failed to commit loader state in {self._state_dir}: {exc}"
            ) from exc
        return committed

    def reset(self) -> None:
        """Delete the checkpoint and entity store."""

        try:
            self.checkpoint_path.unlink(missing_ok=True)
            self.entities_path.unlink(missing_ok=True)
        except OSError as exc:
            raise CheckpointStorageError(f"Failed to reset {self._state_dir}: {exc}") from exc

    def _append_entities(self, entities: Sequence[FundEntity], committed_bytes: int) -> int:
        path = self.entities_path
        if path.exists() and path.stat().st_size > committed_bytes:
            os.truncate(path, committed_bytes)
        with path.open("a", encoding="utf-8") as handle:
            if entities:
                writer = jsonlines.Writer(handle, compact=True, sort_keys=True)
                writer.write_all(entity.to_dict() for entity in entities)
                handle.flush()
                os.fsync(handle.fileno())
        return path.stat().st_size
