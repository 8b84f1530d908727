from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
from pathlib import Path

from .view import SortDirection, SortField


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    list_limit: int = 1000
    presign_expires_in: int = 3600
    sort_field: str = SortField.NAME.value
    sort_direction: str = SortDirection.ASC.value
    remember_last_bucket: bool = False
    last_connection: str = ""
    last_bucket: str = ""


_POSITIVE_INT_FIELDS = ("list_limit", "presign_expires_in")


def _positive_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _choice(value: object, allowed: set[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".r2_browser_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        defaults = AppSettings()
        values = {
            name: _positive_int(data.get(name), getattr(defaults, name))
            for name in _POSITIVE_INT_FIELDS
        }
        remember = data.get("remember_last_bucket", defaults.remember_last_bucket)
        last_connection = data.get("last_connection")
        last_bucket = data.get("last_bucket")
        return AppSettings(
            sort_field=_choice(data.get("sort_field"), {f.value for f in SortField}, defaults.sort_field),
            sort_direction=_choice(
                data.get("sort_direction"),
                {d.value for d in SortDirection},
                defaults.sort_direction,
            ),
            remember_last_bucket=remember if isinstance(remember, bool) else defaults.remember_last_bucket,
            last_connection=last_connection if isinstance(last_connection, str) else "",
            last_bucket=last_bucket if isinstance(last_bucket, str) else "",
            **values,
        )

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        for name in _POSITIVE_INT_FIELDS:
            payload[name] = max(int(payload[name]), 1)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
