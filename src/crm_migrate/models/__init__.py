"""Data models for CRM contacts."""

from .contact import DestinationContact, SourcePage, SourceRecord

__all__ = [
    'DestinationContact',
    'SourcePage',
    'SourceRecord',
]
