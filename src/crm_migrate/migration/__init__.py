"""Migration engine, orchestration and checkpointing."""

from .checkpoint import Checkpoint, CheckpointStore
from .engine import MigrationEngine
from .exceptions import CheckpointError, MigrationStartupError, SourceUnavailableError
from .orchestrator import MigrationOrchestrator, MigrationSummary
from .outcome import CsvOutcomeLog, MigrationResult, MigrationStatus, OutcomeSink
from .pager import SourcePager

__all__ = [
    'Checkpoint',
    'CheckpointStore',
    'MigrationEngine',
    'CheckpointError',
    'MigrationStartupError',
    'SourceUnavailableError',
    'MigrationOrchestrator',
    'MigrationSummary',
    'CsvOutcomeLog',
    'MigrationResult',
    'MigrationStatus',
    'OutcomeSink',
    'SourcePager',
]
