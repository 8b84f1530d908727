from __future__ import annotations
"""Filtering and sorting of a listing for display.

Everything here is a pure function of its inputs so views can recompute
it on every render.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .models import Bucket, ObjectEntry, VirtualFolder


class SortField(str, Enum):
    NAME = "name"
    SIZE = "size"
    DATE = "date"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    field: SortField = SortField.NAME
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def parse(cls, field: str, direction: str) -> SortSpec:
        try:
            return cls(SortField(field), SortDirection(direction))
        except ValueError:
            return cls()

    def toggle(self, field: SortField | str) -> SortSpec:
        """Flip direction on the same field, or start ascending on a new one."""
        field = SortField(field)
        if field is self.field:
            flipped = SortDirection.DESC if self.direction is SortDirection.ASC else SortDirection.ASC
            return SortSpec(field, flipped)
        return SortSpec(field, SortDirection.ASC)


@dataclass(frozen=True)
class ListingView:
    folders: tuple[VirtualFolder, ...]
    files: tuple[ObjectEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not (self.folders or self.files)


def _matches(value: str, needle: str) -> bool:
    return needle in value.lower()


def _sort_value(entry: ObjectEntry, field: SortField):
    if field is SortField.SIZE:
        return entry.size
    if field is SortField.DATE:
        return entry.last_modified.timestamp() if entry.last_modified else float("-inf")
    return entry.key


def sort_files(files: Iterable[ObjectEntry], sort: SortSpec) -> list[ObjectEntry]:
    return sorted(
        files,
        key=lambda entry: _sort_value(entry, sort.field),
        reverse=sort.direction is SortDirection.DESC,
    )


def filter_folders(folders: Iterable[VirtualFolder], search: str) -> list[VirtualFolder]:
    needle = search.lower()
    return [folder for folder in folders if _matches(folder.name, needle)]


def filter_files(files: Iterable[ObjectEntry], search: str) -> list[ObjectEntry]:
    needle = search.lower()
    return [entry for entry in files if _matches(entry.key, needle)]


def filter_buckets(buckets: Iterable[Bucket], search: str = "") -> list[Bucket]:
    needle = search.lower()
    return [bucket for bucket in buckets if _matches(bucket.name, needle)]


def build_view(
    files: Sequence[ObjectEntry],
    folders: Sequence[VirtualFolder],
    search: str = "",
    sort: SortSpec | None = None,
) -> ListingView:
    return ListingView(
        folders=tuple(filter_folders(folders, search)),
        files=tuple(sort_files(filter_files(files, search), sort or SortSpec())),
    )
