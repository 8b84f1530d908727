from __future__ import annotations
"""UI-agnostic helpers for formatting and key composition."""
from datetime import datetime
import mimetypes
from pathlib import PurePath

DEFAULT_CONTENT_TYPE = "application/octet-stream"

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg"})
CODE_EXTENSIONS = frozenset({"ts", "js", "json", "html", "css", "py", "java"})
TEXT_EXTENSIONS = frozenset({"txt", "md", "pdf", "doc", "docx"})


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_last_modified(last_modified: object) -> str:
    if not last_modified:
        return "-"
    if isinstance(last_modified, datetime):
        return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or last_modified.isoformat()
    return str(last_modified)


def compose_key(prefix: str, name: str) -> str:
    key_name = name.strip()
    if not key_name:
        raise ValueError("Object name cannot be empty")
    cleaned_prefix = prefix.strip().lstrip("/")
    if cleaned_prefix and not cleaned_prefix.endswith("/"):
        cleaned_prefix += "/"
    return f"{cleaned_prefix}{key_name}" if cleaned_prefix else key_name


def upload_name(source_path: str) -> str:
    """Object name used for a local file dropped into the current folder."""
    return PurePath(source_path).name


def guess_content_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    return content_type or DEFAULT_CONTENT_TYPE


def file_kind(name: str) -> str:
    """Rough category used to pick an icon: image, code, text or file."""
    _, dot, extension = name.rpartition(".")
    extension = extension.lower() if dot else ""
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension in CODE_EXTENSIONS:
        return "code"
    if extension in TEXT_EXTENSIONS:
        return "text"
    return "file"
