"""Tests for two-phase index synchronization."""

from collections.abc import Callable
from typing import Any

import pytest
from conftest import FakeSearchIndex

from docs_search_records.batch import RecordBatch
from docs_search_records.extractor import ContentExtractor
from docs_search_records.models import Document, SearchRecord
from docs_search_records.records import RecordSynthesizer
from docs_search_records.synchronizer import (
    IndexSynchronizer,
    SyncError,
    SyncState,
    chunk_records,
    record_size,
)

PAGE = "## Install\n\nRun the installer.\n\n## Configure\n\nSet the key.\n"


@pytest.fixture
def stamp(load_doc: Callable[..., Document]) -> Callable[[RecordBatch], list[SearchRecord]]:
    """Return a helper building the records of one page for a batch.

    Args:
        load_doc: Document loading helper.

    Returns:
        Function taking a RecordBatch.
    """
    doc = load_doc(PAGE)
    units = ContentExtractor().extract(doc)

    def _stamp(batch: RecordBatch) -> list[SearchRecord]:
        return RecordSynthesizer(batch).synthesize(doc, units)

    return _stamp


def _stale(count: int, branch: str = "main", batch_id: str = "OLD") -> dict[str, dict[str, Any]]:
    return {
        f"{branch}-{batch_id}-{i}": {"objectID": f"{branch}-{batch_id}-{i}", "branch": branch, "record_batch": batch_id}
        for i in range(count)
    }


def test_chunk_records_respects_ceiling() -> None:
    """Test that chunks never exceed the byte ceiling unless a record does alone."""
    records = [{"objectID": str(i), "content": "x" * 50} for i in range(10)]
    size = record_size(records[0])

    chunks = chunk_records(records, max_bytes=size * 3)

    assert [len(chunk) for chunk in chunks] == [3, 3, 3, 1]
    assert [record for chunk in chunks for record in chunk] == records


def test_chunk_records_oversized_record() -> None:
    """Test that a record larger than the ceiling is pushed on its own."""
    small = {"objectID": "a"}
    large = {"objectID": "b", "content": "x" * 500}

    chunks = chunk_records([small, large, small], max_bytes=100)

    assert chunks == [[small], [large], [small]]


def test_chunk_records_empty() -> None:
    """Test that no records means no chunks."""
    assert chunk_records([]) == []


def test_run_replaces_previous_batch(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that a run upserts the new batch and removes the old one."""
    old = RecordBatch(branch="main", batch_id="B1")
    IndexSynchronizer(fake_index, old).run(stamp(old))
    fake_index.objects.update(_stale(3, batch_id="B1"))

    new = RecordBatch(branch="main", batch_id="B2")
    synchronizer = IndexSynchronizer(fake_index, new)
    result = synchronizer.run(stamp(new))

    assert fake_index.batches() == {"B2"}
    assert result.stale_found == 3
    assert result.stale_deleted == 3
    assert synchronizer.history == [SyncState.IDLE, SyncState.UPSERTING, SyncState.CLEANING, SyncState.DONE]


def test_run_is_idempotent(fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]) -> None:
    """Test that repeated runs of the same content keep the record count stable."""
    first = RecordBatch(branch="main", batch_id="B1")
    IndexSynchronizer(fake_index, first).run(stamp(first))
    count = len(fake_index.objects)

    second = RecordBatch(branch="main", batch_id="B2")
    IndexSynchronizer(fake_index, second).run(stamp(second))

    assert len(fake_index.objects) == count
    assert fake_index.batches() == {"B2"}


def test_other_branches_are_untouched(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that cleanup only considers the current branch."""
    fake_index.objects.update(_stale(5, branch="preview", batch_id="P1"))
    batch = RecordBatch(branch="main", batch_id="B1")

    IndexSynchronizer(fake_index, batch).run(stamp(batch))

    assert fake_index.batches() == {"P1", "B1"}
    assert fake_index.delete_calls == []


def test_stale_query_excludes_current_batch(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test the facet filters used to find stale records."""
    batch = RecordBatch(branch="main", batch_id="B2")
    synchronizer = IndexSynchronizer(fake_index, batch)

    synchronizer.run(stamp(batch))

    assert fake_index.browse_calls == [["branch:main", "record_batch:-B2"]]
    assert list(fake_index.browse(synchronizer.stale_filters, ["objectID"])) == []


def test_upsert_failure_skips_cleanup(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that a failed upsert leaves every stale record in place."""
    fake_index.objects.update(_stale(4))
    fake_index.fail_upsert_on_call = 1
    batch = RecordBatch(branch="main", batch_id="B2")
    synchronizer = IndexSynchronizer(fake_index, batch)

    with pytest.raises(SyncError, match="Upsert failed"):
        synchronizer.run(stamp(batch))

    assert synchronizer.state is SyncState.FAILED
    assert SyncState.CLEANING not in synchronizer.history
    assert fake_index.browse_calls == []
    assert fake_index.delete_calls == []
    assert "OLD" in fake_index.batches()


def test_failure_in_later_chunk_skips_cleanup(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that one failed chunk among several still aborts cleanup."""
    fake_index.objects.update(_stale(2))
    fake_index.fail_upsert_on_call = 2
    batch = RecordBatch(branch="main", batch_id="B2")
    synchronizer = IndexSynchronizer(fake_index, batch, concurrency=1, max_chunk_bytes=1)

    with pytest.raises(SyncError):
        synchronizer.run(stamp(batch))

    assert synchronizer.history == [SyncState.IDLE, SyncState.UPSERTING, SyncState.FAILED]
    assert fake_index.delete_calls == []


def test_deletes_in_batches(fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]) -> None:
    """Test that stale ids are deleted at most 1000 at a time."""
    fake_index.objects.update(_stale(2500))
    batch = RecordBatch(branch="main", batch_id="B2")

    result = IndexSynchronizer(fake_index, batch).run(stamp(batch))

    assert fake_index.delete_calls == [1000, 1000, 500]
    assert result.stale_deleted == 2500
    assert fake_index.batches() == {"B2"}


def test_upserts_are_chunked_and_awaited(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that every chunk task is waited on before cleanup."""
    batch = RecordBatch(branch="main", batch_id="B1")
    records = stamp(batch)

    result = IndexSynchronizer(fake_index, batch, concurrency=3, max_chunk_bytes=1).run(records)

    assert result.chunks_pushed == len(records)
    assert sorted(fake_index.upsert_calls) == [1] * len(records)
    assert len(fake_index.waited) == len(records)


def test_no_stale_records(fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]) -> None:
    """Test that a first run deletes nothing."""
    batch = RecordBatch(branch="main", batch_id="B1")

    result = IndexSynchronizer(fake_index, batch).run(stamp(batch))

    assert result.stale_found == 0
    assert result.stale_deleted == 0
    assert fake_index.delete_calls == []


def test_cleanup_failure(fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]) -> None:
    """Test that a failing stale query fails the run after the upsert."""
    fake_index.fail_browse = True
    batch = RecordBatch(branch="main", batch_id="B1")
    synchronizer = IndexSynchronizer(fake_index, batch)

    with pytest.raises(SyncError, match="cleanup failed"):
        synchronizer.run(stamp(batch))

    assert synchronizer.history == [SyncState.IDLE, SyncState.UPSERTING, SyncState.CLEANING, SyncState.FAILED]
    assert fake_index.batches() == {"B1"}


def test_rejects_records_from_another_batch(
    fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]
) -> None:
    """Test that records stamped with a different batch are refused."""
    records = stamp(RecordBatch(branch="main", batch_id="B1"))
    synchronizer = IndexSynchronizer(fake_index, RecordBatch(branch="main", batch_id="B2"))

    with pytest.raises(ValueError, match="is not stamped with batch B2"):
        synchronizer.run(records)

    assert synchronizer.state is SyncState.IDLE
    assert fake_index.upsert_calls == []


def test_runs_only_once(fake_index: FakeSearchIndex, stamp: Callable[[RecordBatch], list[SearchRecord]]) -> None:
    """Test that a finished synchronizer cannot be started again."""
    batch = RecordBatch(branch="main", batch_id="B1")
    synchronizer = IndexSynchronizer(fake_index, batch)
    synchronizer.run(stamp(batch))

    with pytest.raises(SyncError, match="Invalid synchronization transition"):
        synchronizer.run(stamp(batch))


@pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"delete_batch_size": 1001}, {"delete_batch_size": 0}])
def test_invalid_limits(fake_index: FakeSearchIndex, kwargs: dict[str, int]) -> None:
    """Test that out of range limits are rejected."""
    with pytest.raises(ValueError):
        IndexSynchronizer(fake_index, RecordBatch(branch="main", batch_id="B1"), **kwargs)
