"""Field mapping from source contacts to destination contacts."""

from typing import Any, Dict

from ..models.contact import SourceRecord

# destination field -> source property
CONTACT_FIELD_MAP = {
    'first_name': 'firstname',
    'last_name': 'lastname',
    'email': 'email',
    'mobile_number': 'phone',
    'job_title': 'jobtitle',
    'company': 'company',
    'website': 'website',
    'address': 'address',
    'city': 'city',
    'state': 'state',
    'zipcode': 'zip',
}


def map_contact(record: SourceRecord) -> Dict[str, Any]:
    """Build the destination create body for a source contact."""
    return {
        'contact': {
            dest: record.get(source) for dest, source in CONTACT_FIELD_MAP.items()
        }
    }
