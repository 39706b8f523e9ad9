"""Per-record migration outcomes and where they are recorded."""

import csv
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from ..models.contact import SourceRecord


class MigrationStatus(str, Enum):
    """Migration status enumeration."""

    MIGRATED = 'migrated'
    FAILED = 'failed'


class MigrationResult(BaseModel):
    """Outcome of migrating one source record."""

    source_id: str = Field(..., description='Source record id')
    status: MigrationStatus = Field(..., description='Migration status')
    destination_id: Optional[str] = Field(
        default=None, description='Created destination id'
    )
    reason: Optional[str] = Field(default=None, description='Failure reason')
    completed_at: datetime = Field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.status == MigrationStatus.MIGRATED

    @classmethod
    def migrated(cls, source_id: str, destination_id: str) -> 'MigrationResult':
        return cls(
            source_id=source_id,
            status=MigrationStatus.MIGRATED,
            destination_id=destination_id,
        )

    @classmethod
    def failed(cls, source_id: str, reason: str) -> 'MigrationResult':
        return cls(source_id=source_id, status=MigrationStatus.FAILED, reason=reason)


class OutcomeSink(Protocol):
    """Receives one event per processed record."""

    def record(self, result: MigrationResult, record: SourceRecord) -> None:
        ...


class CsvOutcomeLog:
    """Append-only migrated and failed record logs.

    Each line is ``firstName,lastName,email,sourceId``.
    """

    def __init__(self, migrated_path: str, failed_path: str):
        self.migrated_path = Path(migrated_path)
        self.failed_path = Path(failed_path)

    def record(self, result: MigrationResult, record: SourceRecord) -> None:
        name = f'{record.first_name or ""} {record.last_name or ""}'.strip()
        if result.success:
            logger.info(
                f'Migrated contact {record.id} ({name}, {record.email}) '
                f'-> {result.destination_id}'
            )
            path = self.migrated_path
        else:
            logger.warning(
                f'Failed to migrate contact {record.id} ({name}, {record.email}): '
                f'{result.reason}'
            )
            path = self.failed_path

        row = [
            record.first_name or '',
            record.last_name or '',
            record.email or '',
            record.id,
        ]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'a', encoding='utf-8', newline='') as f:
                csv.writer(f, lineterminator='\n').writerow(row)
        except OSError as e:
            logger.error(f'Error writing to outcome log {path}: {e}')
