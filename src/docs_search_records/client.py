"""Remote search index client backed by the Algolia API client."""

import logging
from collections.abc import Iterator
from types import TracebackType
from typing import Any, Protocol

from algoliasearch.http.exceptions import AlgoliaException
from algoliasearch.search.client import SearchClientSync
from algoliasearch.search.config import SearchConfig

logger = logging.getLogger(__name__)

MAX_DELETE_BATCH = 1000
BROWSE_PAGE_SIZE = 1000


class SearchIndexError(RuntimeError):
    """Raised when the remote search index rejects or fails a request."""


class SearchIndex(Protocol):
    """Operations the synchronizer needs from a remote search index."""

    def upsert(self, records: list[dict[str, Any]]) -> int:
        """Create or replace records by objectID and return the task id."""
        ...

    def delete(self, object_ids: list[str]) -> int:
        """Delete records by objectID and return the task id."""
        ...

    def browse(self, facet_filters: list[str], attributes: list[str]) -> Iterator[dict[str, Any]]:
        """Yield every record matching all facet filters."""
        ...

    def wait_task(self, task_id: int) -> None:
        """Block until the task is applied to the index."""
        ...


class AlgoliaIndex:
    """One Algolia index, seen through the ``SearchIndex`` operations.

    Retries and host failover are handled by the Algolia client; every
    error it reports is re-raised as :class:`SearchIndexError`.
    """

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index_name: str,
        *,
        timeout: float = 30.0,
        client: SearchClientSync | None = None,
    ) -> None:
        """Initialise the index client.

        Args:
            app_id: Algolia application id.
            api_key: Algolia API key with write access.
            index_name: Name of the index to operate on.
            timeout: Read and write timeout in seconds.
            client: Preconfigured Algolia client, used by tests.
        """
        self.index_name = index_name
        if client is None:
            config = SearchConfig(app_id, api_key)
            config.read_timeout = int(timeout * 1000)
            config.write_timeout = int(timeout * 1000)
            client = SearchClientSync(config=config)
        self._client = client

    def __enter__(self) -> "AlgoliaIndex":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _batch(self, action: str, bodies: list[dict[str, Any]]) -> int:
        requests = [{"action": action, "body": body} for body in bodies]
        try:
            response = self._client.batch(index_name=self.index_name, batch_write_params={"requests": requests})
        except AlgoliaException as e:
            msg = f"Algolia {action} batch failed: {e}"
            raise SearchIndexError(msg) from e
        return int(response.task_id)

    def upsert(self, records: list[dict[str, Any]]) -> int:
        """Create or replace records keyed by objectID.

        Args:
            records: Serialised search records.

        Returns:
            Algolia task id of the batch.
        """
        return self._batch("updateObject", records)

    def delete(self, object_ids: list[str]) -> int:
        """Delete records by objectID.

        Args:
            object_ids: At most 1000 object ids.

        Returns:
            Algolia task id of the batch.

        Raises:
            ValueError: If more than 1000 ids are given.
        """
        if len(object_ids) > MAX_DELETE_BATCH:
            msg = f"Cannot delete more than {MAX_DELETE_BATCH} records per call, got {len(object_ids)}"
            raise ValueError(msg)
        return self._batch("deleteObject", [{"objectID": object_id} for object_id in object_ids])

    def browse(self, facet_filters: list[str], attributes: list[str]) -> Iterator[dict[str, Any]]:
        """Iterate over every record matching the facet filters.

        Follows the browse cursor until the index reports no further page.

        Args:
            facet_filters: Conjunctive facet filters such as ``branch:main``.
            attributes: Attributes to retrieve for each hit.

        Yields:
            Hits as returned by Algolia.
        """
        params: dict[str, Any] = {
            "facetFilters": facet_filters,
            "attributesToRetrieve": attributes,
            "hitsPerPage": BROWSE_PAGE_SIZE,
        }
        while True:
            try:
                page = self._client.browse(index_name=self.index_name, browse_params=params).to_dict()
            except AlgoliaException as e:
                msg = f"Algolia browse failed: {e}"
                raise SearchIndexError(msg) from e
            yield from page.get("hits", [])
            cursor = page.get("cursor")
            if not cursor:
                return
            logger.debug("Following browse cursor of %s", self.index_name)
            params = {"cursor": cursor}

    def wait_task(self, task_id: int) -> None:
        """Block until Algolia reports the task as published.

        Args:
            task_id: Task id returned by a write operation.

        Raises:
            SearchIndexError: If the task cannot be confirmed.
        """
        try:
            self._client.wait_for_task(index_name=self.index_name, task_id=task_id)
        except AlgoliaException as e:
            msg = f"Algolia task {task_id} was not confirmed: {e}"
            raise SearchIndexError(msg) from e
