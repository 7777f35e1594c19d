"""Command line interface for building and synchronizing search records."""

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from docs_search_records.batch import new_batch
from docs_search_records.client import AlgoliaIndex, SearchIndexError
from docs_search_records.config import ConfigError, IndexerConfig, load_config
from docs_search_records.indexer import SearchRecordIndexer
from docs_search_records.loader import DocumentLoader
from docs_search_records.models import IndexRun
from docs_search_records.records import write_records
from docs_search_records.synchronizer import IndexSynchronizer, SyncError

logger = logging.getLogger(__name__)

DIST_DIR = click.Path(exists=True, file_okay=False, path_type=Path)


def _echo_run_summary(run: IndexRun) -> None:
    click.echo(f"✓ Processed {run.files_processed} files, skipped {run.files_skipped}")
    click.echo(f"✓ Generated {len(run.records)} search records")


def _fail(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _load_config(require_credentials: bool) -> IndexerConfig:
    try:
        return load_config(require_credentials=require_credentials)
    except ConfigError as e:
        _fail(e)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Build documentation search records and sync them to the search index."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.command()
@click.argument("dist_dir", type=DIST_DIR)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output JSON file")
@click.option("--base-url", help="Public URL prefix of the documentation")
@click.option("--workers", type=click.IntRange(min=1), help="Documents processed in parallel")
def build(dist_dir: Path, output: Path | None, base_url: str | None, workers: int | None) -> None:
    """Write search records for DIST_DIR to a local JSON file.

    Args:
        dist_dir: Directory of finished documents
        output: Output file, overrides SEARCH_RECORDS_OUTPUT
        base_url: URL prefix, overrides DOCS_BASE_URL
        workers: Parallel documents, overrides SEARCH_INDEX_WORKERS
    """
    cfg = _load_config(require_credentials=False)
    indexer = SearchRecordIndexer(
        DocumentLoader(base_url or cfg.base_url),
        workers=workers or cfg.workers,
    )
    try:
        run = indexer.index_directory(dist_dir)
    except ValueError as e:
        _fail(e)

    _echo_run_summary(run)
    path = write_records(run.records, output or cfg.output_path)
    click.echo(f"✓ Wrote {len(run.records)} records to {path}")


@cli.command()
@click.argument("dist_dir", type=DIST_DIR)
@click.option("--dry-run", is_flag=True, help="Write records locally instead of pushing them")
@click.option("--branch", help="Branch to sync, resolved from CI or git if omitted")
@click.option("--base-url", help="Public URL prefix of the documentation")
@click.option("--workers", type=click.IntRange(min=1), help="Documents processed in parallel")
@click.option("--concurrency", type=click.IntRange(min=1), help="Upsert chunks in flight")
def sync(
    dist_dir: Path,
    dry_run: bool,
    branch: str | None,
    base_url: str | None,
    workers: int | None,
    concurrency: int | None,
) -> None:
    """Push search records for DIST_DIR and delete stale records.

    Args:
        dist_dir: Directory of finished documents
        dry_run: Skip every remote write
        branch: Branch override
        base_url: URL prefix, overrides DOCS_BASE_URL
        workers: Parallel documents, overrides SEARCH_INDEX_WORKERS
        concurrency: Parallel upsert chunks, overrides SEARCH_SYNC_CONCURRENCY
    """
    cfg = _load_config(require_credentials=not dry_run)
    batch = new_batch(branch)
    click.echo(f"Building search records (branch: {batch.branch}, batch: {batch.batch_id})")

    indexer = SearchRecordIndexer(
        DocumentLoader(base_url or cfg.base_url),
        batch=batch,
        workers=workers or cfg.workers,
    )
    try:
        run = indexer.index_directory(dist_dir)
    except ValueError as e:
        _fail(e)
    _echo_run_summary(run)

    if dry_run:
        path = write_records(run.records, cfg.output_path)
        click.echo(f"⚠︎ DRY RUN: Wrote {len(run.records)} records to {path}")
        return

    with AlgoliaIndex(
        cfg.app_id,
        cfg.api_key,
        cfg.index_name,
        timeout=cfg.timeout,
    ) as index:
        synchronizer = IndexSynchronizer(index, batch, concurrency=concurrency or cfg.concurrency)
        try:
            result = synchronizer.run(run.records)
        except (SyncError, SearchIndexError) as e:
            _fail(e)

    click.echo(f"✓ Pushed {result.records_pushed} records in {result.chunks_pushed} chunks")
    click.echo(f"✓ Deleted {result.stale_deleted} stale records")
    click.echo("✓ Update complete!")


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
