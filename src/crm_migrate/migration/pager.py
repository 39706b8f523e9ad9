"""Cursor-following reader for the source contact listing."""

from typing import AsyncIterator, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from ..api.client import APIClient, APIRequest
from ..api.exceptions import MigrationAPIError, TerminalNotFound
from ..api.retry import RetryingExecutor
from ..config.config import DEFAULT_PROPERTIES
from ..models.contact import SourcePage, SourceRecord
from .exceptions import SourceUnavailableError

CONTACTS_RESOURCE = '/crm/v3/objects/contacts'


class SourcePager:
    """Streams source records page by page, starting after a checkpoint."""

    def __init__(
        self,
        client: APIClient,
        executor: RetryingExecutor,
        page_size: int = 100,
        properties: Optional[Sequence[str]] = None,
        resource: str = CONTACTS_RESOURCE,
    ):
        """Initialize source pager.

        Args:
            client: Source API client
            executor: Retrying executor, holding the source rate limiter
            page_size: Records requested per page
            properties: Source properties to fetch
            resource: Listing resource path
        """
        self.client = client
        self.executor = executor
        self.page_size = page_size
        self.properties: List[str] = list(properties or DEFAULT_PROPERTIES)
        self.resource = resource
        self.logger = logger.bind(component='SourcePager')

    async def fetch_all(self, after_id: Optional[str] = None) -> AsyncIterator[SourceRecord]:
        """Yield every source record strictly after ``after_id``.

        A failure on the first page raises ``SourceUnavailableError``; a
        failure on a later page ends the sequence early, so records already
        yielded can still be migrated.
        """
        cursor = after_id
        page_number = 0
        total = 0

        while True:
            page_number += 1
            page = await self._fetch_page(cursor, first=page_number == 1)
            if page is None:
                break

            records = page.results
            if page_number == 1 and after_id is not None:
                records = _strictly_after(records, after_id)

            for record in records:
                total += 1
                yield record

            cursor = page.next_cursor
            if cursor is None:
                break

        self.logger.info(f'Fetched {total} source records in {page_number} pages')

    async def fetch_one(self, record_id: str) -> Optional[SourceRecord]:
        """Fetch a single source record, or None if the source has no such id.

        Raises:
            RetryExhausted: If the source could not be reached
        """
        request = APIRequest(
            method='GET',
            resource=f'{self.resource}/{record_id}',
            params={'properties': self.properties},
        )
        response = await self.executor.execute(
            lambda: self.client.send(request), request
        )
        if response.not_found:
            return None
        return SourceRecord.model_validate(response.data)

    async def _fetch_page(self, cursor: Optional[str], first: bool) -> Optional[SourcePage]:
        params = {'limit': self.page_size, 'properties': self.properties}
        if cursor:
            params['after'] = cursor
        request = APIRequest(method='GET', resource=self.resource, params=params)

        try:
            response = await self.executor.execute(
                lambda: self.client.send(request), request
            )
            if response.not_found:
                raise TerminalNotFound(
                    f'Source listing {self.resource} returned 404',
                    response_data=response.data,
                )
            return SourcePage.model_validate(response.data)
        except (MigrationAPIError, ValidationError) as e:
            if first:
                raise SourceUnavailableError(
                    f'Cannot fetch source records: {e}'
                ) from e
            self.logger.error(
                f'Failed to fetch source page after cursor {cursor!r}, '
                f'stopping with the records fetched so far: {e}'
            )
            return None


def _strictly_after(records: List[SourceRecord], after_id: str) -> List[SourceRecord]:
    """Drop ``after_id`` and anything before it if the page echoes it."""
    for index, record in enumerate(records):
        if record.id == after_id:
            return records[index + 1 :]
    return records
