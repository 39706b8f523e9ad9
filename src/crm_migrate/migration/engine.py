"""Migration engine - main entry point for migration operations."""

from loguru import logger

from ..api.client import APIClientFactory
from ..api.rate_limiter import RateLimiter
from ..api.retry import ApiErrorLog, RetryingExecutor
from ..config.config import Config
from .checkpoint import Checkpoint, CheckpointStore
from .orchestrator import DESTINATION_RESOURCE, MigrationOrchestrator, MigrationSummary
from .outcome import CsvOutcomeLog
from .pager import CONTACTS_RESOURCE, SourcePager

SOURCE_API = 'Source API'
DESTINATION_API = 'Destination API'


class MigrationEngine:
    """Builds the clients, limiters and stores a migration run needs."""

    def __init__(self, config: Config):
        """Initialize migration engine.

        Args:
            config: Migration configuration
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')
        migration = config.migration

        self.source_client = APIClientFactory.create_client(SOURCE_API, config.source)
        self.destination_client = APIClientFactory.create_client(
            DESTINATION_API, config.destination
        )

        # One limiter per API, shared by every call made against it
        self.source_limiter = RateLimiter(
            config.source.rate_limit_requests, config.source.rate_limit_interval
        )
        self.destination_limiter = RateLimiter(
            config.destination.rate_limit_requests,
            config.destination.rate_limit_interval,
        )

        error_log = ApiErrorLog(migration.error_log)
        self.checkpoint_store = CheckpointStore(migration.checkpoint_file)
        self.outcome_log = CsvOutcomeLog(migration.migrated_log, migration.failed_log)

        self.pager = SourcePager(
            self.source_client,
            RetryingExecutor(
                SOURCE_API,
                max_retries=migration.max_retries,
                error_log=error_log,
                limiter=self.source_limiter,
            ),
            page_size=migration.page_size,
            properties=migration.properties,
        )
        self.orchestrator = MigrationOrchestrator(
            self.pager,
            self.destination_client,
            RetryingExecutor(
                DESTINATION_API,
                max_retries=migration.max_retries,
                error_log=error_log,
                limiter=self.destination_limiter,
            ),
            self.checkpoint_store,
            self.outcome_log,
        )

    async def migrate(self) -> MigrationSummary:
        """Run the migration from the saved checkpoint onwards."""
        self.logger.info('Starting CRM migration')
        try:
            return await self.orchestrator.run()
        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            self.close()

    async def retry_failed(self) -> MigrationSummary:
        """Re-attempt the records queued as failed in the checkpoint."""
        self.logger.info('Retrying failed records')
        try:
            return await self.orchestrator.retry_failed()
        finally:
            self.close()

    def checkpoint(self) -> Checkpoint:
        return self.checkpoint_store.load()

    def test_connectivity(self) -> None:
        """Test connectivity to both APIs.

        Raises:
            ConnectionError: If connectivity test fails
        """
        self.logger.info('Testing connectivity to source and destination APIs')

        if not self.source_client.test_connection(CONTACTS_RESOURCE):
            raise ConnectionError('Cannot connect to source API')

        if not self.destination_client.test_connection(DESTINATION_RESOURCE):
            raise ConnectionError('Cannot connect to destination API')

        self.logger.info('Connectivity tests passed')

    def close(self) -> None:
        self.source_client.close()
        self.destination_client.close()
