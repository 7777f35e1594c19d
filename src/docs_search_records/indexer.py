"""Indexer turning a finished documentation build into search records."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from docs_search_records.batch import RecordBatch
from docs_search_records.extractor import ContentExtractor
from docs_search_records.loader import DocumentLoader
from docs_search_records.models import IndexRun, SearchRecord
from docs_search_records.records import RecordSynthesizer

logger = logging.getLogger(__name__)


class SearchRecordIndexer:
    """Loads finished documents and synthesizes their search records."""

    def __init__(
        self,
        loader: DocumentLoader | None = None,
        batch: RecordBatch | None = None,
        workers: int = 1,
    ) -> None:
        """Initialise indexer.

        Args:
            loader: Document loader; a default one is created if omitted.
            batch: Synchronization batch to stamp records with, if any.
            workers: Number of documents processed in parallel.
        """
        self.loader = loader or DocumentLoader()
        self.extractor = ContentExtractor()
        self.synthesizer = RecordSynthesizer(batch)
        self.workers = max(1, workers)

    def index_directory(self, docs_path: Path) -> IndexRun:
        """Build the search records of every document below a directory.

        Args:
            docs_path: Root directory of the finished documents.

        Returns:
            IndexRun with the records and processed/skipped counts.

        Raises:
            ValueError: If the documentation path does not exist.
        """
        if not docs_path.exists():
            msg = f"Documentation path does not exist: {docs_path}"
            raise ValueError(msg)

        files = self.loader.discover(docs_path)
        logger.info("Found %d documents to index", len(files))

        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                results = list(executor.map(lambda path: self._index_file(path, docs_path), files))
        else:
            results = [self._index_file(path, docs_path) for path in files]

        run = IndexRun()
        for records in results:
            if records is None:
                run.files_skipped += 1
                continue
            run.files_processed += 1
            run.records.extend(records)

        logger.info("Processed %d files, skipped %d", run.files_processed, run.files_skipped)
        logger.info("Generated %d search records", len(run.records))
        return run

    def _index_file(self, file_path: Path, docs_path: Path) -> list[SearchRecord] | None:
        document = self.loader.parse_file(file_path, docs_path)
        if document is None:
            return None
        units = self.extractor.extract(document)
        records = self.synthesizer.synthesize(document, units)
        logger.debug("Indexed: %s (%d records)", document.path, len(records))
        return records
