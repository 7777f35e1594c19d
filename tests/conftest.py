"""Shared fixtures for the search record tests."""

import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from docs_search_records.loader import DocumentLoader
from docs_search_records.models import Document


class FakeSearchIndex:
    """In-memory search index honouring upsert, browse and delete semantics."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.upsert_calls: list[int] = []
        self.delete_calls: list[int] = []
        self.browse_calls: list[list[str]] = []
        self.waited: list[int] = []
        self.fail_upsert_on_call: int | None = None
        self.fail_browse = False
        self._task_id = 0
        self._lock = threading.Lock()

    def __enter__(self) -> "FakeSearchIndex":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def _next_task(self) -> int:
        self._task_id += 1
        return self._task_id

    def upsert(self, records: list[dict[str, Any]]) -> int:
        with self._lock:
            self.upsert_calls.append(len(records))
            if self.fail_upsert_on_call == len(self.upsert_calls):
                msg = "upsert rejected"
                raise RuntimeError(msg)
            for record in records:
                self.objects[record["objectID"]] = dict(record)
            return self._next_task()

    def delete(self, object_ids: list[str]) -> int:
        with self._lock:
            if len(object_ids) > 1000:
                msg = "too many ids"
                raise ValueError(msg)
            self.delete_calls.append(len(object_ids))
            for object_id in object_ids:
                self.objects.pop(object_id, None)
            return self._next_task()

    def browse(self, facet_filters: list[str], attributes: list[str]) -> Iterator[dict[str, Any]]:
        self.browse_calls.append(list(facet_filters))
        if self.fail_browse:
            msg = "browse unavailable"
            raise RuntimeError(msg)
        for record in list(self.objects.values()):
            if all(_matches(record, facet_filter) for facet_filter in facet_filters):
                yield {attribute: record.get(attribute) for attribute in attributes}

    def wait_task(self, task_id: int) -> None:
        with self._lock:
            self.waited.append(task_id)

    def batches(self) -> set[str]:
        return {record["record_batch"] for record in self.objects.values()}


def _matches(record: dict[str, Any], facet_filter: str) -> bool:
    attribute, _, value = facet_filter.partition(":")
    if value.startswith("-"):
        return record.get(attribute) != value[1:]
    return record.get(attribute) == value


@pytest.fixture
def fake_index() -> FakeSearchIndex:
    """Create an empty in-memory search index.

    Returns:
        FakeSearchIndex instance.
    """
    return FakeSearchIndex()


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    """Create a temporary directory of finished documents.

    Args:
        tmp_path: Pytest temporary directory fixture.

    Returns:
        Path to the documents directory.
    """
    path = tmp_path / "dist"
    path.mkdir()
    return path


@pytest.fixture
def write_doc(docs_dir: Path) -> Callable[..., Path]:
    """Return a helper writing a document with YAML frontmatter.

    Args:
        docs_dir: Documents directory fixture.

    Returns:
        Function taking a relative path, frontmatter text and body.
    """

    def _write(relative: str, frontmatter: str, body: str = "") -> Path:
        path = docs_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"---\n{frontmatter.strip()}\n---\n\n{body}", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def load_doc(docs_dir: Path, write_doc: Callable[..., Path]) -> Callable[..., Document]:
    """Return a helper that writes a document and loads it.

    Args:
        docs_dir: Documents directory fixture.
        write_doc: Document writing helper.

    Returns:
        Function returning the parsed Document.
    """
    loader = DocumentLoader()

    def _load(body: str, frontmatter: str = "title: Guide", relative: str = "guide.mdx") -> Document:
        path = write_doc(relative, frontmatter, body)
        document = loader.parse_file(path, docs_dir)
        assert document is not None
        return document

    return _load
