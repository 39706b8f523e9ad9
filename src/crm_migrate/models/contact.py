"""Contact models for the source and destination CRMs."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceRecord(BaseModel):
    """A contact as fetched from the source API."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description='Source-assigned identifier')
    properties: Dict[str, Optional[str]] = Field(
        default_factory=dict, description='Named field values'
    )

    def get(self, name: str) -> Optional[str]:
        return self.properties.get(name)

    @property
    def first_name(self) -> Optional[str]:
        return self.get('firstname')

    @property
    def last_name(self) -> Optional[str]:
        return self.get('lastname')

    @property
    def email(self) -> Optional[str]:
        return self.get('email')


class PagingNext(BaseModel):
    after: Optional[str] = None


class Paging(BaseModel):
    next: Optional[PagingNext] = None


class SourcePage(BaseModel):
    """One page of the source contact listing."""

    results: List[SourceRecord] = Field(default_factory=list)
    paging: Optional[Paging] = None

    @property
    def next_cursor(self) -> Optional[str]:
        """Cursor for the following page, or None on the last page."""
        if self.paging is None or self.paging.next is None:
            return None
        return self.paging.next.after


class DestinationContact(BaseModel):
    """Contact as echoed back by the destination API."""

    id: str = Field(..., description='Destination identifier')
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    job_title: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict) -> 'DestinationContact':
        """Parse a ``{"contact": {...}}`` create response."""
        contact = dict(data['contact'])
        contact['id'] = str(contact['id'])
        return cls(**contact)
