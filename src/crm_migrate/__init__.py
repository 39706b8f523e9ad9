"""CRM Migration Tool

Migrates contacts in bulk from a paginated source CRM API to a rate-limited
destination CRM API, checkpointing progress so interrupted runs resume where
they stopped.
"""

__version__ = '0.1.0'

__all__ = ['__version__']
