from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(BaseModel):
    """One stored observation of an email and/or phone number."""

    id: int
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: LinkPrecedence
    createdAt: datetime
    updatedAt: Optional[datetime] = None
    deletedAt: Optional[datetime] = None

    @field_validator("createdAt", "updatedAt", "deletedAt")
    @classmethod
    def _naive_as_utc(cls, value):
        # rows written by SQLite defaults or older schemas carry no offset
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_primary(self) -> bool:
        return self.linkPrecedence == LinkPrecedence.PRIMARY

    @property
    def root_id(self) -> Optional[int]:
        """Id of the primary this contact belongs to."""
        return self.id if self.is_primary else self.linkedId

    def has_pair(self, email: Optional[str], phone: Optional[str]) -> bool:
        return self.email == email and self.phoneNumber == phone


class ClusterOutcome(BaseModel):
    primary: Contact
    secondaries: List[Contact] = Field(default_factory=list)


class IdentifyRequest(BaseModel):
    email: Optional[str] = None
    phoneNumber: Optional[str] = None

    @field_validator("phoneNumber", mode="before")
    @classmethod
    def _phone_number_as_text(cls, value):
        # clients often send the phone number as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ConsolidatedContact(BaseModel):
    primaryContactId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]


class IdentifyResponse(BaseModel):
    contact: ConsolidatedContact
