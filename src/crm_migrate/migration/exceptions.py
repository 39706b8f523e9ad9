"""Errors that stop a migration run before any record is processed."""


class MigrationStartupError(Exception):
    """The run cannot start; re-running resumes from the checkpoint."""

    pass


class CheckpointError(MigrationStartupError):
    """The checkpoint file exists but cannot be read or written."""

    pass


class SourceUnavailableError(MigrationStartupError):
    """The first page of source records could not be fetched."""

    pass
