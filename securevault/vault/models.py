"""
Vault record models.

Wire names are camelCase (``encryptedPassword``, ``createdAt``,
``lastModified``); Python attributes are snake_case. Both are accepted
on input.
"""
import enum
from datetime import datetime, timezone
from typing import Optional
from collections.abc import Iterator, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VaultState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class RecordMetadata(_WireModel):
    """Plaintext fields supplied when a record is created."""

    website: str
    username: str
    category: str = "general"
    url: Optional[str] = None
    notes: Optional[str] = None


class RecordUpdate(_WireModel):
    """Partial update; only fields explicitly set are applied."""

    website: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    category: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None


class _StoredFields(_WireModel):
    id: str = Field(min_length=1)
    website: str
    username: str
    category: str = "general"
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    last_modified: datetime

    @field_validator("created_at", "last_modified")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class EncryptedRecord(_StoredFields):
    """A record as persisted: the password only exists as a blob."""

    encrypted_password: str = Field(min_length=1)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Record(_StoredFields):
    """A decrypted record. Lives in memory only."""

    password: str = Field(repr=False)

    @classmethod
    def from_encrypted(cls, stored: EncryptedRecord, password: str) -> "Record":
        data = stored.model_dump(exclude={"encrypted_password"})
        return cls(password=password, **data)


class SkippedRecord(BaseModel):
    """A stored record that could not be decrypted during a listing."""

    id: str
    reason: str


class RecordListing(Sequence):
    """Decrypted records plus a report of what was left out.

    Behaves as a read-only sequence of :class:`Record`. ``stored_count``
    is the number of records in storage; whenever ``len(listing)`` is
    smaller, ``skipped`` names the missing ids and why.
    """

    def __init__(
        self,
        records: list[Record],
        stored_count: int,
        skipped: Optional[list[SkippedRecord]] = None,
    ) -> None:
        self._records = records
        self.stored_count = stored_count
        self.skipped = skipped or []

    def __repr__(self) -> str:
        return (
            f"<RecordListing records={len(self._records)} "
            f"stored={self.stored_count} skipped={len(self.skipped)}>"
        )

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    @property
    def complete(self) -> bool:
        return not self.skipped and len(self._records) == self.stored_count

    @property
    def records(self) -> list[Record]:
        return list(self._records)

    def get(self, record_id: str) -> Optional[Record]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None
