from __future__ import annotations
"""Helpers that derive a folder hierarchy from flat object keys."""
from typing import Iterable, Mapping

from .models import DELIMITER, Listing, ObjectEntry, VirtualFolder


def basename(key: str, delimiter: str = DELIMITER) -> str:
    """Return the part of ``key`` after the last delimiter."""
    return key.rsplit(delimiter, 1)[-1]


def split_segments(prefix: str, delimiter: str = DELIMITER) -> list[str]:
    return [segment for segment in prefix.split(delimiter) if segment]


def prefix_for_segments(segments: Iterable[str], delimiter: str = DELIMITER) -> str:
    parts = [segment for segment in segments if segment]
    return delimiter.join(parts) + delimiter if parts else ""


def display_name(prefix: str, delimiter: str = DELIMITER) -> str:
    segments = split_segments(prefix, delimiter)
    return segments[-1] if segments else ""


def normalize_prefix(prefix: str, delimiter: str = DELIMITER) -> str:
    """Strip leading delimiters and make sure a non-empty prefix ends with one."""
    cleaned = prefix.strip().lstrip(delimiter)
    if cleaned and not cleaned.endswith(delimiter):
        cleaned += delimiter
    return cleaned


def parent_prefix(prefix: str, delimiter: str = DELIMITER) -> str:
    return prefix_for_segments(split_segments(prefix, delimiter)[:-1], delimiter)


def child_prefix(prefix: str, name: str, delimiter: str = DELIMITER) -> str:
    return normalize_prefix(f"{normalize_prefix(prefix, delimiter)}{name}", delimiter)


def project(
    bucket: str,
    prefix: str,
    contents: Iterable[Mapping[str, object]],
    common_prefixes: Iterable[Mapping[str, object] | str] = (),
    *,
    delimiter: str = DELIMITER,
) -> Listing:
    """Split one delimiter-scoped listing into direct files and folders.

    ``contents`` are ``list_objects_v2`` ``Contents`` rows and
    ``common_prefixes`` its ``CommonPrefixes`` rows (or bare prefix strings).
    Placeholder objects whose key equals ``prefix`` and keys outside
    ``prefix`` are dropped. Keys that still contain the delimiter below
    ``prefix`` are folded into their first-level folder.
    """
    folders: dict[str, VirtualFolder] = {}

    def add_folder(folder_prefix: str) -> None:
        if folder_prefix and folder_prefix != prefix and folder_prefix not in folders:
            folders[folder_prefix] = VirtualFolder(
                prefix=folder_prefix,
                name=display_name(folder_prefix, delimiter),
            )

    for row in common_prefixes:
        value = row if isinstance(row, str) else row.get("Prefix")
        if isinstance(value, str) and value.startswith(prefix):
            add_folder(value)

    files: list[ObjectEntry] = []
    for row in contents:
        key = row.get("Key")
        if not isinstance(key, str) or key == prefix or not key.startswith(prefix):
            continue
        remainder = key[len(prefix):]
        # a delimiter at position 0 is an empty segment, not a folder boundary
        boundary = remainder.find(delimiter, 1) if delimiter else -1
        if boundary > 0:
            add_folder(f"{prefix}{remainder[:boundary]}{delimiter}")
            continue
        files.append(
            ObjectEntry(
                key=key,
                size=int(row.get("Size") or 0),
                last_modified=row.get("LastModified"),
            )
        )

    return Listing(
        bucket=bucket,
        prefix=prefix,
        delimiter=delimiter,
        files=tuple(files),
        folders=tuple(folders.values()),
    )
