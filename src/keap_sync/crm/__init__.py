"""Keap CRM integration layer.

Provides:
- KeapClient: Async Keap REST v1 wrapper with bounded rate-limit retry
- CRMError / CRMRateLimitError: Failures carrying the Keap HTTP status
- CustomFieldMap: Logical custom field names -> per-account Keap field IDs
- Contact: Pydantic view of a Keap contact and its custom fields
"""

from src.keap_sync.crm.client import CRMError, CRMRateLimitError, KeapClient
from src.keap_sync.crm.field_mapping import (
    CustomFieldMap,
    to_custom_fields,
    validate_field_map,
)
from src.keap_sync.crm.schemas import Contact, CustomFieldValue, Tag

__all__ = [
    "KeapClient",
    "CRMError",
    "CRMRateLimitError",
    "CustomFieldMap",
    "to_custom_fields",
    "validate_field_map",
    "Contact",
    "CustomFieldValue",
    "Tag",
]
