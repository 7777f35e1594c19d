"""Two-phase synchronization of search records into the remote index.

A run first upserts every record of the current batch, then deletes the
records of the same branch that carry any other batch id. Cleanup never
starts unless every upsert chunk was acknowledged, so an aborted run leaves
the previous batch in place and the next successful run collects it.
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any

from docs_search_records.batch import RecordBatch
from docs_search_records.client import MAX_DELETE_BATCH, SearchIndex
from docs_search_records.models import SearchRecord

logger = logging.getLogger(__name__)

MAX_CHUNK_BYTES = int(4.5 * 1024 * 1024)


class SyncError(RuntimeError):
    """Raised when a synchronization run fails."""


class SyncState(Enum):
    IDLE = "idle"
    UPSERTING = "upserting"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    SyncState.IDLE: frozenset({SyncState.UPSERTING}),
    SyncState.UPSERTING: frozenset({SyncState.CLEANING, SyncState.FAILED}),
    SyncState.CLEANING: frozenset({SyncState.DONE, SyncState.FAILED}),
    SyncState.DONE: frozenset(),
    SyncState.FAILED: frozenset(),
}


@dataclass
class SyncResult:
    """Summary of a synchronization run."""

    records_pushed: int = 0
    chunks_pushed: int = 0
    stale_found: int = 0
    stale_deleted: int = 0


def record_size(record: dict[str, Any]) -> int:
    return len(json.dumps(record, ensure_ascii=False).encode("utf-8"))


def chunk_records(records: list[dict[str, Any]], max_bytes: int = MAX_CHUNK_BYTES) -> list[list[dict[str, Any]]]:
    """Split records into chunks whose serialised size stays under a ceiling.

    A single record larger than the ceiling gets a chunk of its own.

    Args:
        records: Serialised records.
        max_bytes: Maximum summed JSON size of one chunk.

    Returns:
        List of chunks in input order.
    """
    chunks: list[list[dict[str, Any]]] = []
    current: list[dict[str, Any]] = []
    current_size = 0

    for record in records:
        size = record_size(record)
        if current and current_size + size > max_bytes:
            chunks.append(current)
            current = []
            current_size = 0
        current.append(record)
        current_size += size

    if current:
        chunks.append(current)
    return chunks


class IndexSynchronizer:
    """Pushes one batch of records and garbage-collects older batches."""

    def __init__(
        self,
        index: SearchIndex,
        batch: RecordBatch,
        *,
        concurrency: int = 4,
        max_chunk_bytes: int = MAX_CHUNK_BYTES,
        delete_batch_size: int = MAX_DELETE_BATCH,
    ) -> None:
        """Initialise synchronizer.

        Args:
            index: Remote search index.
            batch: Batch the records were stamped with.
            concurrency: Maximum number of upsert chunks in flight.
            max_chunk_bytes: Byte ceiling of one upsert chunk.
            delete_batch_size: Object ids per delete call.

        Raises:
            ValueError: If a numeric limit is out of range.
        """
        if concurrency < 1:
            msg = f"Concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        if not 1 <= delete_batch_size <= MAX_DELETE_BATCH:
            msg = f"Delete batch size must be between 1 and {MAX_DELETE_BATCH}, got {delete_batch_size}"
            raise ValueError(msg)
        self.index = index
        self.batch = batch
        self.concurrency = concurrency
        self.max_chunk_bytes = max_chunk_bytes
        self.delete_batch_size = delete_batch_size
        self.state = SyncState.IDLE
        self.history: list[SyncState] = [SyncState.IDLE]

    def _transition(self, state: SyncState) -> None:
        if state not in _TRANSITIONS[self.state]:
            msg = f"Invalid synchronization transition: {self.state.value} -> {state.value}"
            raise SyncError(msg)
        logger.debug("Synchronization state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def stale_filters(self) -> list[str]:
        """Facet filters selecting this branch's records from other batches."""
        return [f"branch:{self.batch.branch}", f"record_batch:-{self.batch.batch_id}"]

    def run(self, records: list[SearchRecord]) -> SyncResult:
        """Upsert the records, then delete stale records of the branch.

        Args:
            records: Records stamped with this synchronizer's batch.

        Returns:
            SyncResult with push and cleanup counts.

        Raises:
            ValueError: If a record belongs to another branch or batch.
            SyncError: If any upsert or cleanup call fails.
        """
        for record in records:
            if record.branch != self.batch.branch or record.record_batch != self.batch.batch_id:
                msg = f"Record {record.object_id} is not stamped with batch {self.batch.batch_id}"
                raise ValueError(msg)

        result = SyncResult(records_pushed=len(records))

        self._transition(SyncState.UPSERTING)
        try:
            result.chunks_pushed = self._upsert([record.to_dict() for record in records])
        except Exception as exc:
            self._transition(SyncState.FAILED)
            msg = f"Upsert failed, stale records were not cleaned up: {exc}"
            raise SyncError(msg) from exc

        self._transition(SyncState.CLEANING)
        try:
            stale_ids = self._find_stale()
            result.stale_found = len(stale_ids)
            result.stale_deleted = self._delete(stale_ids)
        except Exception as exc:
            self._transition(SyncState.FAILED)
            msg = f"Stale record cleanup failed: {exc}"
            raise SyncError(msg) from exc

        self._transition(SyncState.DONE)
        return result

    def _push_chunk(self, number: int, total: int, chunk: list[dict[str, Any]]) -> int:
        logger.debug("Pushing chunk %d/%d (%d records)", number, total, len(chunk))
        task_id = self.index.upsert(chunk)
        self.index.wait_task(task_id)
        return len(chunk)

    def _upsert(self, payloads: list[dict[str, Any]]) -> int:
        """Push all chunks and wait until each is acknowledged.

        The first failing chunk cancels every chunk that has not started.

        Args:
            payloads: Serialised records.

        Returns:
            Number of chunks pushed.
        """
        chunks = chunk_records(payloads, self.max_chunk_bytes)
        logger.info("Pushing %d records in %d chunks", len(payloads), len(chunks))
        if not chunks:
            return 0

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures: list[Future[int]] = [
                executor.submit(self._push_chunk, number, len(chunks), chunk)
                for number, chunk in enumerate(chunks, start=1)
            ]
            try:
                for future in as_completed(futures):
                    future.result()
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        logger.info("All %d chunks acknowledged", len(chunks))
        return len(chunks)

    def _find_stale(self) -> list[str]:
        """Collect the ids of this branch's records from other batches."""
        stale_ids = [hit["objectID"] for hit in self.index.browse(self.stale_filters, ["objectID"])]
        if stale_ids:
            logger.info("Found %d stale records to delete", len(stale_ids))
        else:
            logger.info("No stale records found")
        return stale_ids

    def _delete(self, object_ids: list[str]) -> int:
        deleted = 0
        for start in range(0, len(object_ids), self.delete_batch_size):
            batch_ids = object_ids[start : start + self.delete_batch_size]
            task_id = self.index.delete(batch_ids)
            self.index.wait_task(task_id)
            deleted += len(batch_ids)
        if deleted:
            logger.info("Deleted %d stale records", deleted)
        return deleted
