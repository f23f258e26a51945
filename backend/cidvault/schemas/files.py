"""File ledger schemas: ledger records and command payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, NonNegativeInt, field_validator, model_validator


class FileRecord(BaseModel):
    """One ledger entry per uploaded file."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    filename: str
    size: NonNegativeInt
    hash: str
    project: str | None = None
    # Ledgers written by the original service stored this as "ipfs_cid"
    content_id: str = Field(
        default="",
        validation_alias=AliasChoices("content_id", "ipfs_cid"),
    )
    owner: str
    created_at: datetime
    deleted_at: datetime | None = None
    is_deleted: bool = False

    @field_validator("owner")
    @classmethod
    def normalize_owner(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _check_deleted_state(self) -> "FileRecord":
        if self.is_deleted != (self.deleted_at is not None):
            raise ValueError("is_deleted and deleted_at disagree")
        return self


class Command(BaseModel):
    """Envelope shared by every action."""

    action: str = ""
    owner: str = ""

    @field_validator("owner")
    @classmethod
    def normalize_owner(cls, value: str) -> str:
        return value.lower()


class UploadCommand(Command):
    filename: str = ""
    size: NonNegativeInt = 0
    base64: str = ""
    project: str | None = None
    cid: str = ""


class ListCommand(Command):
    project: str | None = None


class FileIdCommand(Command):
    """Delete, Restore and Download address a single record."""
    id: str = ""


class PurgeCommand(Command):
    """empty_recycle_bin; an id narrows the purge to that one record."""
    id: str | None = None
