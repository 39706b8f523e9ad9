"""Migration orchestrator: moves source records to the destination one by one."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..api.client import APIClient, APIRequest
from ..api.exceptions import MigrationAPIError, TerminalNotFound
from ..api.retry import RetryingExecutor
from ..models.contact import DestinationContact, SourceRecord
from .checkpoint import Checkpoint, CheckpointStore
from .mapping import map_contact
from .outcome import MigrationResult, OutcomeSink
from .pager import SourcePager

DESTINATION_RESOURCE = '/api/contacts'


class MigrationSummary(BaseModel):
    """Summary of migration results."""

    migrated: int = Field(default=0, description='Records created at the destination')
    failed: int = Field(default=0, description='Records that could not be migrated')

    # Timing
    started_at: datetime = Field(..., description='Run start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Run completion time'
    )

    last_processed_id: Optional[str] = Field(
        default=None, description='Checkpoint after the run'
    )
    results: List[MigrationResult] = Field(
        default_factory=list, description='Per-record results'
    )

    @property
    def total(self) -> int:
        return self.migrated + self.failed

    def add(self, result: MigrationResult) -> None:
        self.results.append(result)
        if result.success:
            self.migrated += 1
        else:
            self.failed += 1


class MigrationOrchestrator:
    """Drives a checkpointed, record-at-a-time migration."""

    def __init__(
        self,
        pager: SourcePager,
        destination: APIClient,
        executor: RetryingExecutor,
        checkpoint_store: CheckpointStore,
        outcome_sink: OutcomeSink,
        mapper: Callable[[SourceRecord], Dict[str, Any]] = map_contact,
        resource: str = DESTINATION_RESOURCE,
    ):
        """Initialize migration orchestrator.

        Args:
            pager: Source record reader
            destination: Destination API client
            executor: Retrying executor for destination calls, holding the
                destination rate limiter
            checkpoint_store: Durable progress
            outcome_sink: Receives per-record outcomes
            mapper: Pure transform from source record to create body
            resource: Destination create resource path
        """
        self.pager = pager
        self.destination = destination
        self.executor = executor
        self.checkpoint_store = checkpoint_store
        self.outcome_sink = outcome_sink
        self.mapper = mapper
        self.resource = resource
        self.logger = logger.bind(component='MigrationOrchestrator')

    async def run(self) -> MigrationSummary:
        """Migrate every source record after the checkpoint.

        Single record failures are recorded and skipped. Only startup
        problems (an unreadable checkpoint, an unreachable source) raise,
        and re-running afterwards resumes from the checkpoint.

        Returns:
            Migration summary with results
        """
        checkpoint = self.checkpoint_store.load()
        summary = MigrationSummary(started_at=datetime.now())
        self.logger.info('Starting migration execution')

        async for record in self.pager.fetch_all(checkpoint.last_processed_id):
            result = await self.migrate_record(record)

            if result.success:
                checkpoint = checkpoint.advance(record.id)
            else:
                checkpoint = checkpoint.mark_failed(record.id)
            self.checkpoint_store.save(checkpoint)

            summary.add(result)
            self.outcome_sink.record(result, record)

        return self._finish(summary, checkpoint)

    async def retry_failed(self) -> MigrationSummary:
        """Re-attempt the records queued in the checkpoint.

        The success frontier is left alone; recovered records leave the queue.

        Returns:
            Migration summary for the retried records
        """
        checkpoint = self.checkpoint_store.load()
        summary = MigrationSummary(started_at=datetime.now())
        queued = list(checkpoint.failed_ids)
        self.logger.info(f'Retrying {len(queued)} failed records')

        for record_id in queued:
            try:
                record = await self.pager.fetch_one(record_id)
            except (MigrationAPIError, ValidationError) as e:
                self.logger.warning(f'Could not fetch source record {record_id}: {e}')
                result = MigrationResult.failed(record_id, f'Source fetch failed: {e}')
                summary.add(result)
                self.outcome_sink.record(result, SourceRecord(id=record_id))
                continue

            if record is None:
                self.logger.warning(f'Source record {record_id} no longer exists')
                result = MigrationResult.failed(record_id, 'Not found in source')
                summary.add(result)
                self.outcome_sink.record(result, SourceRecord(id=record_id))
                continue

            result = await self.migrate_record(record)
            if result.success:
                checkpoint = checkpoint.mark_recovered(record_id)
                self.checkpoint_store.save(checkpoint)

            summary.add(result)
            self.outcome_sink.record(result, record)

        return self._finish(summary, checkpoint)

    async def migrate_record(self, record: SourceRecord) -> MigrationResult:
        """Create one record at the destination.

        Never raises for API or data problems; they become failed results.
        """
        try:
            body = self.mapper(record)
        except (KeyError, TypeError, ValueError) as e:
            return MigrationResult.failed(record.id, f'Mapping failed: {e}')

        request = APIRequest(method='POST', resource=self.resource, body=body)
        try:
            response = await self.executor.execute(
                lambda: self.destination.send(request), request
            )
            if response.not_found:
                raise TerminalNotFound(
                    f'Destination returned 404: {response.text}',
                    response_data=response.data,
                )
        except MigrationAPIError as e:
            return MigrationResult.failed(record.id, str(e))
        except Exception as e:
            self.logger.exception(f'Unexpected error migrating record {record.id}')
            return MigrationResult.failed(record.id, f'Unexpected error: {e!r}')

        try:
            created = DestinationContact.from_response(response.data)
        except (KeyError, TypeError, ValidationError) as e:
            return MigrationResult.failed(
                record.id, f'Unexpected destination response: {e}'
            )

        return MigrationResult.migrated(record.id, created.id)

    def _finish(
        self, summary: MigrationSummary, checkpoint: Checkpoint
    ) -> MigrationSummary:
        summary.completed_at = datetime.now()
        summary.last_processed_id = checkpoint.last_processed_id
        self.logger.info(
            f'Migration completed: {summary.migrated} migrated, '
            f'{summary.failed} failed'
        )
        return summary
