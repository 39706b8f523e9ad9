"""Durable migration progress."""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import CheckpointError


class Checkpoint(BaseModel):
    """Success frontier plus the queue of records that failed behind it."""

    model_config = ConfigDict(populate_by_name=True)

    last_processed_id: Optional[str] = Field(
        default=None,
        alias='lastProcessedId',
        description='Last source id whose destination create succeeded',
    )
    failed_ids: List[str] = Field(
        default_factory=list,
        alias='failedIds',
        description='Source ids waiting to be retried',
    )

    def advance(self, record_id: str) -> 'Checkpoint':
        """Move the frontier to a freshly migrated record."""
        return Checkpoint(
            last_processed_id=record_id,
            failed_ids=[i for i in self.failed_ids if i != record_id],
        )

    def mark_failed(self, record_id: str) -> 'Checkpoint':
        if record_id in self.failed_ids:
            return self
        return Checkpoint(
            last_processed_id=self.last_processed_id,
            failed_ids=self.failed_ids + [record_id],
        )

    def mark_recovered(self, record_id: str) -> 'Checkpoint':
        """Drop a retried record from the queue without moving the frontier."""
        return Checkpoint(
            last_processed_id=self.last_processed_id,
            failed_ids=[i for i in self.failed_ids if i != record_id],
        )


class CheckpointStore:
    """JSON file holding the single ``Checkpoint`` of a migration."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.logger = logger.bind(component='CheckpointStore')

    def load(self) -> Checkpoint:
        """Load the checkpoint; a missing file means a fresh start.

        Raises:
            CheckpointError: If the file exists but is unreadable or corrupt
        """
        if not self.path.exists():
            self.logger.info(f'No checkpoint at {self.path}, starting from the beginning')
            return Checkpoint()

        try:
            raw = self.path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise CheckpointError(f'Cannot read checkpoint {self.path}: {e}') from e

        if not raw.strip():
            self.logger.warning(f'Checkpoint {self.path} is empty, starting fresh')
            return Checkpoint()

        try:
            checkpoint = Checkpoint.model_validate_json(raw)
        except ValidationError as e:
            raise CheckpointError(f'Corrupt checkpoint {self.path}: {e}') from e

        self.logger.info(
            f'Resuming after {checkpoint.last_processed_id!r} '
            f'({len(checkpoint.failed_ids)} failed records queued)'
        )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> None:
        """Persist the checkpoint atomically.

        The new content goes to a temporary file that replaces the old one,
        so an interrupted save leaves the previous checkpoint intact.
        """
        payload = checkpoint.model_dump_json(by_alias=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            prefix=f'.{self.path.name}.', suffix='.tmp', dir=self.path.parent
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise CheckpointError(f'Cannot write checkpoint {self.path}: {e}') from e

        self.logger.debug(f'Checkpoint saved: {payload}')
