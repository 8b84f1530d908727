from __future__ import annotations
"""Data models representing buckets, objects and virtual folders."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


DELIMITER = "/"


@dataclass(frozen=True)
class Bucket:
    """A bucket returned by the store."""

    name: str
    creation_date: Optional[datetime] = None


@dataclass(frozen=True)
class ObjectEntry:
    """A single object (file) within a bucket."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.key.rsplit(DELIMITER, 1)[-1]


@dataclass(frozen=True)
class VirtualFolder:
    """A folder derived from a common key prefix."""

    prefix: str
    name: str


@dataclass(frozen=True)
class Listing:
    """Files and folders directly under ``prefix`` in ``bucket``."""

    bucket: str
    prefix: str = ""
    delimiter: str = DELIMITER
    files: tuple[ObjectEntry, ...] = ()
    folders: tuple[VirtualFolder, ...] = ()
    has_more: bool = False

    def without_file(self, key: str) -> Listing:
        return replace(self, files=tuple(entry for entry in self.files if entry.key != key))

    def find_file(self, key: str) -> ObjectEntry | None:
        for entry in self.files:
            if entry.key == key:
                return entry
        return None


@dataclass(frozen=True)
class Location:
    """Where the browser is pointing; ``bucket=None`` is the bucket list."""

    bucket: Optional[str] = None
    prefix: str = ""

    @property
    def is_bucket_list(self) -> bool:
        return self.bucket is None

    @property
    def is_root(self) -> bool:
        return self.prefix == ""


class TransferMode(str, Enum):
    COPY = "copy"
    MOVE = "move"


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    NO_OP = "no_op"


@dataclass(frozen=True)
class ClipboardEntry:
    """The object held in the clipboard and what to do with it on paste."""

    entry: ObjectEntry
    mode: TransferMode


@dataclass(frozen=True)
class TransferResult:
    status: TransferStatus
    mode: TransferMode
    source_key: str
    destination_key: str

    @property
    def is_no_op(self) -> bool:
        return self.status is TransferStatus.NO_OP


@dataclass
class UploadTarget:
    """A presigned PUT target that an external uploader can send bytes to."""

    bucket: str
    key: str
    url: str
    content_type: str = ""
    expires_in: int = 3600
    method: str = "PUT"
    headers: dict[str, str] = field(default_factory=dict)
