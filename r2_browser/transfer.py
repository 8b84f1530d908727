from __future__ import annotations
"""Copy and move of objects between prefixes of one bucket."""
import logging
from typing import Protocol

from .models import (
    DELIMITER,
    ClipboardEntry,
    ObjectEntry,
    TransferMode,
    TransferResult,
    TransferStatus,
)
from .namespace import basename
from .services import StoreError


LOGGER = logging.getLogger(__name__)


class PartialTransferError(StoreError):
    """Raised when a move copied the object but could not delete the source.

    The object now exists under both keys.
    """

    def __init__(self, source_key: str, destination_key: str, cause: Exception):
        super().__init__(
            f"Copied '{source_key}' to '{destination_key}' but could not delete the original: {cause}"
        )
        self.source_key = source_key
        self.destination_key = destination_key
        self.cause = cause


class EntryStore(Protocol):
    def copy_entry(self, *, bucket_name: str, source_key: str, destination_key: str) -> None: ...

    def delete_entry(self, *, bucket_name: str, key: str) -> None: ...


def destination_key(source_key: str, target_prefix: str, delimiter: str = DELIMITER) -> str:
    return f"{target_prefix}{basename(source_key, delimiter)}"


class TransferCoordinator:
    """Runs a single copy or move against an :class:`EntryStore`."""

    def __init__(self, store: EntryStore, delimiter: str = DELIMITER):
        self._store = store
        self._delimiter = delimiter

    def execute(
        self,
        *,
        bucket_name: str,
        source_key: str,
        target_prefix: str,
        mode: TransferMode,
    ) -> TransferResult:
        """Copy (and for moves, delete) ``source_key`` into ``target_prefix``.

        Returns a ``NO_OP`` result without touching the store when the
        destination key equals the source key.

        Raises:
            StoreError: when the copy fails; nothing was changed.
            PartialTransferError: when a move copied but failed to delete.
        """
        mode = TransferMode(mode)
        target = destination_key(source_key, target_prefix, self._delimiter)
        if target == source_key:
            LOGGER.debug("Skipping %s of '%s': already at destination", mode.value, source_key)
            return TransferResult(TransferStatus.NO_OP, mode, source_key, target)

        self._store.copy_entry(bucket_name=bucket_name, source_key=source_key, destination_key=target)
        if mode is TransferMode.MOVE:
            try:
                self._store.delete_entry(bucket_name=bucket_name, key=source_key)
            except StoreError as exc:
                raise PartialTransferError(source_key, target, exc) from exc
        LOGGER.debug("%s '%s' -> '%s' in bucket '%s'", mode.value, source_key, target, bucket_name)
        return TransferResult(TransferStatus.COMPLETED, mode, source_key, target)


class Clipboard:
    """Single-slot clipboard holding one object and a copy/move mode."""

    def __init__(self) -> None:
        self._entry: ClipboardEntry | None = None

    @property
    def entry(self) -> ClipboardEntry | None:
        return self._entry

    @property
    def is_empty(self) -> bool:
        return self._entry is None

    def copy(self, entry: ObjectEntry) -> ClipboardEntry:
        self._entry = ClipboardEntry(entry=entry, mode=TransferMode.COPY)
        return self._entry

    def cut(self, entry: ObjectEntry) -> ClipboardEntry:
        self._entry = ClipboardEntry(entry=entry, mode=TransferMode.MOVE)
        return self._entry

    def clear(self) -> None:
        self._entry = None

    def clear_if_matches(self, key: str) -> bool:
        if self._entry is not None and self._entry.entry.key == key:
            self._entry = None
            return True
        return False
