"""Pydantic models for Keap REST v1 resources used by the sync."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CustomFieldValue(BaseModel):
    """A single ``{id, content}`` custom field entry on a contact."""

    model_config = ConfigDict(extra="ignore")

    id: int
    content: Any = None


class EmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    field: str = "EMAIL1"


class Contact(BaseModel):
    """Keap contact as returned by search, get, and create."""

    model_config = ConfigDict(extra="ignore")

    id: int
    given_name: str | None = None
    family_name: str | None = None
    email_addresses: list[EmailAddress] = Field(default_factory=list)
    custom_fields: list[CustomFieldValue] = Field(default_factory=list)

    def custom_field(self, field_id: int) -> str | None:
        """Return the content of a custom field, or None if absent/empty."""
        for entry in self.custom_fields:
            if entry.id == field_id:
                if entry.content is None or entry.content == "":
                    return None
                return str(entry.content)
        return None


class Tag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
