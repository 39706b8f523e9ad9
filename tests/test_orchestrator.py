"""End-to-end tests for the migration orchestrator."""

import json

import pytest

from crm_migrate.api.retry import ApiErrorLog, RetryingExecutor
from crm_migrate.migration.checkpoint import Checkpoint, CheckpointStore
from crm_migrate.migration.exceptions import CheckpointError, SourceUnavailableError
from crm_migrate.migration.mapping import map_contact
from crm_migrate.migration.orchestrator import MigrationOrchestrator
from crm_migrate.migration.outcome import CsvOutcomeLog, MigrationStatus
from crm_migrate.migration.pager import SourcePager
from crm_migrate.models.contact import SourceRecord
from fakes import FakeClock, FakeDestinationApi, FakeSourceApi, make_response


class TestMapContact:
    """Test the source to destination field mapping."""

    def test_maps_contact_fields(self):
        """Source properties land in the destination contact body."""
        record = SourceRecord(
            id='42',
            properties={
                'firstname': 'Ada',
                'lastname': 'Lovelace',
                'email': 'ada@example.com',
                'phone': '+44 20 7946 0000',
                'jobtitle': 'Analyst',
                'zip': 'SW1A',
            },
        )

        contact = map_contact(record)['contact']

        assert contact['first_name'] == 'Ada'
        assert contact['last_name'] == 'Lovelace'
        assert contact['email'] == 'ada@example.com'
        assert contact['mobile_number'] == '+44 20 7946 0000'
        assert contact['job_title'] == 'Analyst'
        assert contact['zipcode'] == 'SW1A'
        assert contact['company'] is None


class RecordingStore(CheckpointStore):
    """Checkpoint store remembering every saved checkpoint."""

    def __init__(self, path):
        super().__init__(path)
        self.saved = []

    def save(self, checkpoint):
        self.saved.append(checkpoint)
        super().save(checkpoint)


class TestMigrationOrchestrator:
    """Test checkpointed migration runs."""

    @pytest.fixture(autouse=True)
    def setup_paths(self, tmp_path):
        """Set up file locations and the fake clock."""
        self.tmp_path = tmp_path
        self.checkpoint_path = tmp_path / 'migration_progress.json'
        self.migrated_log = tmp_path / 'migrated_contacts.txt'
        self.failed_log = tmp_path / 'failed_contacts.csv'
        self.error_log = tmp_path / 'api_error_log.txt'
        self.clock = FakeClock()

    def _orchestrator(self, source, destination):
        error_log = ApiErrorLog(str(self.error_log))
        self.store = RecordingStore(str(self.checkpoint_path))
        pager = SourcePager(
            source,
            RetryingExecutor('Source API', error_log=error_log, sleep=self.clock.sleep),
            page_size=2,
        )
        return MigrationOrchestrator(
            pager,
            destination,
            RetryingExecutor(
                'Destination API', error_log=error_log, sleep=self.clock.sleep
            ),
            self.store,
            CsvOutcomeLog(str(self.migrated_log), str(self.failed_log)),
        )

    def _lines(self, path):
        return path.read_text().splitlines() if path.exists() else []

    def _checkpoint(self):
        return json.loads(self.checkpoint_path.read_text())

    @pytest.mark.asyncio
    async def test_fresh_run_migrates_everything(self):
        """Three records, no checkpoint, destination accepts all."""
        source = FakeSourceApi(['A', 'B', 'C'])
        destination = FakeDestinationApi()

        summary = await self._orchestrator(source, destination).run()

        assert summary.migrated == 3
        assert summary.failed == 0
        assert [r.status for r in summary.results] == [MigrationStatus.MIGRATED] * 3
        assert [r.destination_id for r in summary.results] == ['1001', '1002', '1003']
        assert summary.last_processed_id == 'C'
        assert self._checkpoint()['lastProcessedId'] == 'C'
        assert self._lines(self.migrated_log) == [
            'FirstA,LastA,a@example.com,A',
            'FirstB,LastB,b@example.com,B',
            'FirstC,LastC,c@example.com,C',
        ]
        assert self._lines(self.failed_log) == []

    @pytest.mark.asyncio
    async def test_persistent_server_error_fails_single_record(self):
        """A record rejected with a persistent 500 fails, the others migrate."""
        source = FakeSourceApi(['A', 'B', 'C'])
        destination = FakeDestinationApi(statuses={'b@example.com': 500})

        summary = await self._orchestrator(source, destination).run()

        assert summary.migrated == 2
        assert summary.failed == 1
        statuses = {r.source_id: r.status for r in summary.results}
        assert statuses == {
            'A': MigrationStatus.MIGRATED,
            'B': MigrationStatus.FAILED,
            'C': MigrationStatus.MIGRATED,
        }
        assert destination.calls.count('b@example.com') == 4
        assert self.clock.sleeps == [2, 4, 8]
        assert self._checkpoint() == {'lastProcessedId': 'C', 'failedIds': ['B']}
        assert self._lines(self.failed_log) == ['FirstB,LastB,b@example.com,B']
        assert len(self._lines(self.migrated_log)) == 2
        assert 'Status Code: 500' in self.error_log.read_text()

    @pytest.mark.asyncio
    async def test_not_found_is_failed_without_retry(self):
        """A destination 404 is a failed outcome, never retried, never fatal."""
        source = FakeSourceApi(['A', 'B'])
        destination = FakeDestinationApi(statuses={'a@example.com': 404})

        summary = await self._orchestrator(source, destination).run()

        assert destination.calls.count('a@example.com') == 1
        assert self.clock.sleeps == []
        assert summary.results[0].status == MigrationStatus.FAILED
        assert '404' in summary.results[0].reason
        assert summary.results[1].status == MigrationStatus.MIGRATED
        assert self._checkpoint()['lastProcessedId'] == 'B'

    @pytest.mark.asyncio
    async def test_checkpoint_only_follows_migrated_records(self):
        """Every saved frontier is a migrated id and never moves backwards."""
        ids = ['A', 'B', 'C', 'D', 'E']
        source = FakeSourceApi(ids)
        destination = FakeDestinationApi(
            statuses={'b@example.com': 422, 'e@example.com': 404}
        )

        summary = await self._orchestrator(source, destination).run()

        migrated = {r.source_id for r in summary.results if r.success}
        frontiers = [c.last_processed_id for c in self.store.saved]
        assert frontiers == ['A', 'A', 'C', 'D', 'D']
        assert all(f in migrated for f in frontiers)
        positions = [ids.index(f) for f in frontiers]
        assert positions == sorted(positions)
        assert summary.last_processed_id == 'D'
        assert self.store.saved[-1].failed_ids == ['B', 'E']

    @pytest.mark.asyncio
    async def test_resume_after_interruption(self):
        """With checkpoint A the run migrates exactly B, C and D."""
        CheckpointStore(str(self.checkpoint_path)).save(
            Checkpoint(last_processed_id='A')
        )
        source = FakeSourceApi(['A', 'B', 'C', 'D'])
        destination = FakeDestinationApi()

        summary = await self._orchestrator(source, destination).run()

        assert [r.source_id for r in summary.results] == ['B', 'C', 'D']
        assert destination.created == ['b@example.com', 'c@example.com', 'd@example.com']
        assert source.requests[0].params['after'] == 'A'
        assert self._checkpoint()['lastProcessedId'] == 'D'

    @pytest.mark.asyncio
    async def test_transport_fault_is_retried(self):
        """A dropped connection is retried and the record still migrates."""
        source = FakeSourceApi(['A'])
        destination = FakeDestinationApi(faults={'a@example.com': 2})

        summary = await self._orchestrator(source, destination).run()

        assert summary.migrated == 1
        assert destination.calls == ['a@example.com'] * 3
        assert self.clock.sleeps == [2, 4]
        assert 'ConnectionResetError' in self.error_log.read_text()

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_only_that_record(self):
        """An error outside the API taxonomy fails one record, not the batch."""

        class UndecodableDestination(FakeDestinationApi):
            async def send(self, request):
                if request.body['contact']['email'] == 'a@example.com':
                    self.calls.append('a@example.com')
                    raise UnicodeDecodeError('utf-8', b'\xff', 0, 1, 'invalid start byte')
                return await super().send(request)

        source = FakeSourceApi(['A', 'B'])
        destination = UndecodableDestination()

        summary = await self._orchestrator(source, destination).run()

        assert summary.results[0].status == MigrationStatus.FAILED
        assert 'UnicodeDecodeError' in summary.results[0].reason
        assert summary.results[1].status == MigrationStatus.MIGRATED
        assert self._checkpoint() == {'lastProcessedId': 'B', 'failedIds': ['A']}

    @pytest.mark.asyncio
    async def test_unwritable_outcome_log_does_not_abort(self):
        """A failing outcome log is reported and the run carries on."""
        self.migrated_log.mkdir()
        source = FakeSourceApi(['A', 'B'])
        destination = FakeDestinationApi()

        summary = await self._orchestrator(source, destination).run()

        assert summary.migrated == 2
        assert destination.created == ['a@example.com', 'b@example.com']
        assert self._checkpoint()['lastProcessedId'] == 'B'

    @pytest.mark.asyncio
    async def test_unreadable_checkpoint_aborts_before_fetching(self):
        """A corrupt checkpoint is a startup failure."""
        self.checkpoint_path.write_text('not json')
        source = FakeSourceApi(['A'])
        destination = FakeDestinationApi()

        with pytest.raises(CheckpointError):
            await self._orchestrator(source, destination).run()

        assert source.requests == []
        assert destination.calls == []

    @pytest.mark.asyncio
    async def test_unreachable_source_aborts(self):
        """If the first page cannot be read nothing is migrated."""
        source = FakeSourceApi(['A'], fail_cursors=[None])
        destination = FakeDestinationApi()

        with pytest.raises(SourceUnavailableError):
            await self._orchestrator(source, destination).run()

        assert destination.calls == []
        assert not self.checkpoint_path.exists()

    @pytest.mark.asyncio
    async def test_runs_return_independent_counts(self):
        """Counts belong to each run, not to the orchestrator."""
        source = FakeSourceApi(['A', 'B'])
        orchestrator = self._orchestrator(source, FakeDestinationApi())

        first = await orchestrator.run()
        second = await orchestrator.run()

        assert (first.migrated, first.failed) == (2, 0)
        assert (second.migrated, second.failed) == (0, 0)

    @pytest.mark.asyncio
    async def test_retry_failed_recovers_queued_records(self):
        """Queued failures are retried without moving the frontier."""
        source = FakeSourceApi(['A', 'B', 'C'])
        destination = FakeDestinationApi(statuses={'b@example.com': 500})
        orchestrator = self._orchestrator(source, destination)
        await orchestrator.run()

        destination.statuses.clear()
        summary = await orchestrator.retry_failed()

        assert summary.migrated == 1
        assert summary.results[0].source_id == 'B'
        assert self._checkpoint() == {'lastProcessedId': 'C', 'failedIds': []}
        assert self._lines(self.migrated_log)[-1] == 'FirstB,LastB,b@example.com,B'

    @pytest.mark.asyncio
    async def test_retry_failed_keeps_records_missing_from_source(self):
        """A queued id the source no longer knows stays queued."""
        CheckpointStore(str(self.checkpoint_path)).save(
            Checkpoint(last_processed_id='A', failed_ids=['Z'])
        )
        source = FakeSourceApi(['A'])
        destination = FakeDestinationApi()

        summary = await self._orchestrator(source, destination).retry_failed()

        assert summary.failed == 1
        assert summary.results[0].reason == 'Not found in source'
        assert destination.calls == []
        assert self._checkpoint()['failedIds'] == ['Z']
        assert self._lines(self.failed_log) == [',,,Z']

    @pytest.mark.asyncio
    async def test_retry_failed_logs_source_fetch_failures(self):
        """A queued id whose source read fails is written to the failed log."""
        CheckpointStore(str(self.checkpoint_path)).save(
            Checkpoint(last_processed_id='A', failed_ids=['B'])
        )

        class BrokenSource(FakeSourceApi):
            async def send(self, request):
                self.requests.append(request)
                return make_response(500, {'message': 'Internal error'})

        source = BrokenSource(['A', 'B'])

        summary = await self._orchestrator(source, FakeDestinationApi()).retry_failed()

        assert summary.failed == 1
        assert summary.results[0].reason.startswith('Source fetch failed')
        assert self._lines(self.failed_log) == [',,,B']
        assert self._checkpoint()['failedIds'] == ['B']
