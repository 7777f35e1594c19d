"""Search record synthesis from extracted content units."""

import json
import logging
from pathlib import Path

from docs_search_records.batch import RecordBatch
from docs_search_records.extractor import MAIN_ANCHOR
from docs_search_records.models import ContentUnit, Document, RecordWeight, SearchRecord

logger = logging.getLogger(__name__)

# Heading weights match the Algolia DocSearch crawler configuration.
HEADING_WEIGHTS: dict[str, int] = {
    "lvl1": 90,
    "lvl2": 80,
    "lvl3": 70,
    "lvl4": 60,
    "lvl5": 50,
    "lvl6": 40,
    "content": 0,
}


def record_url(base_url: str, anchor: str) -> str:
    """Link to the anchor, or to the page itself for page-level records."""
    if anchor == MAIN_ANCHOR:
        return base_url
    return f"{base_url}#{anchor}"


class RecordSynthesizer:
    """Builds search records for a document from its content units."""

    def __init__(self, batch: RecordBatch | None = None) -> None:
        """Initialise record synthesizer.

        Args:
            batch: Synchronization batch to stamp records with. Without one
                the records are built for the local artifact and carry no
                branch or batch fields.
        """
        self.batch = batch

    def synthesize(self, document: Document, units: list[ContentUnit]) -> list[SearchRecord]:
        """Convert a document's content units into search records.

        Positions are assigned in emission order from a single counter per
        document, so every record of the document has a distinct objectID.

        Args:
            document: Source document.
            units: Content units in document order.

        Returns:
            List of search records.
        """
        base_url = document.url
        distinct_base = document.canonical or base_url
        sdk = [document.sdk.active] if document.sdk.active else []
        available_sdks = list(document.sdk.available)

        records: list[SearchRecord] = []
        for position, unit in enumerate(units):
            records.append(
                SearchRecord(
                    object_id=self._object_id(position, base_url, unit.anchor),
                    url=record_url(base_url, unit.anchor),
                    url_without_anchor=base_url,
                    anchor=unit.anchor,
                    content=unit.content,
                    type=unit.kind,
                    hierarchy=unit.hierarchy.snapshot(),
                    weight=RecordWeight(
                        page_rank=document.page_rank,
                        level=HEADING_WEIGHTS.get(unit.kind, 0),
                        position=position,
                    ),
                    sdk=list(sdk),
                    available_sdks=list(available_sdks),
                    canonical=document.canonical,
                    distinct_group=f"{distinct_base}#{unit.anchor}",
                    keywords=list(document.keywords),
                    branch=self.batch.branch if self.batch else None,
                    record_batch=self.batch.batch_id if self.batch else None,
                )
            )
        return records

    def _object_id(self, position: int, base_url: str, anchor: str) -> str:
        if self.batch:
            return f"{self.batch.branch}-{position}-{base_url}#{anchor}"
        return f"{position}-{base_url}#{anchor}"


def write_records(records: list[SearchRecord], output_path: Path) -> Path:
    """Write records to a local JSON artifact.

    The artifact never carries the synchronization fields.

    Args:
        records: Records to serialise.
        output_path: Destination file; parent directories are created.

    Returns:
        The path written to.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [record.to_dict(include_batch=False) for record in records]
    output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote %d records to %s", len(records), output_path)
    return output_path
