from __future__ import annotations
"""View-agnostic presenter that runs controller operations off the UI thread."""
from dataclasses import replace
from functools import partial
import logging
import threading
from typing import Callable, TypeVar

from .controller import R2BrowserController
from .models import DELIMITER, Bucket, Listing, TransferMode, TransferResult, UploadTarget
from .profiles import ConnectionProfile
from .services import StoreError
from .settings import AppSettings, SettingsStorage
from .view import SortSpec


T = TypeVar("T")
DispatchFn = Callable[[Callable[[], None]], None]
ErrorFn = Callable[[Exception], None]
DoneFn = Callable[[], None]

LOGGER = logging.getLogger(__name__)


class R2BrowserPresenter:
    """Runs store operations on worker threads and returns results via callbacks.

    Every callback is handed to ``dispatch`` so a GUI can marshal it back to
    its own thread. The default dispatch calls it directly.
    """

    def __init__(
        self,
        *,
        controller: R2BrowserController | None = None,
        settings_storage: SettingsStorage | None = None,
        dispatch: DispatchFn | None = None,
    ) -> None:
        self._controller = controller or R2BrowserController()
        self._settings_storage = settings_storage or SettingsStorage()
        self._settings = self._settings_storage.load()
        self._dispatch = dispatch or (lambda func: func())

    @property
    def settings(self) -> AppSettings:
        return replace(self._settings)

    @property
    def is_connected(self) -> bool:
        return self._controller.is_connected

    @property
    def selected_profile(self) -> str | None:
        return self._controller.selected_profile

    @property
    def sort_spec(self) -> SortSpec:
        return SortSpec.parse(self._settings.sort_field, self._settings.sort_direction)

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._settings_storage.save(settings)

    def update_list_limit(self, value: int) -> None:
        normalized = max(int(value), 1)
        self._settings = replace(self._settings, list_limit=normalized)
        self._settings_storage.save(self._settings)

    def update_sort(self, sort: SortSpec) -> None:
        self._settings = replace(
            self._settings,
            sort_field=sort.field.value,
            sort_direction=sort.direction.value,
        )
        self._settings_storage.save(self._settings)

    def update_last_connection(self, connection: str) -> None:
        if not self._settings.remember_last_bucket:
            return
        self._settings = replace(self._settings, last_connection=connection or "")
        self._settings_storage.save(self._settings)

    def update_last_bucket(self, bucket: str) -> None:
        if not self._settings.remember_last_bucket:
            return
        self._settings = replace(self._settings, last_bucket=bucket or "")
        self._settings_storage.save(self._settings)

    def list_profiles(self) -> list[ConnectionProfile]:
        return self._controller.list_profiles()

    def save_profile(self, profile: ConnectionProfile, *, original_name: str | None = None) -> None:
        self._controller.save_profile(profile, original_name=original_name)

    def delete_profile(self, name: str) -> None:
        self._controller.delete_profile(name)
        if self._settings.last_connection == name:
            self._settings = replace(self._settings, last_connection="")
            self._settings_storage.save(self._settings)

    def get_profile(self, name: str) -> ConnectionProfile:
        return self._controller.get_profile(name)

    def maybe_auto_connect_profile(self) -> str | None:
        if not self._settings.remember_last_bucket:
            return None
        last_connection = self._settings.last_connection
        if last_connection not in {profile.name for profile in self.list_profiles()}:
            return None
        return last_connection

    def remembered_bucket(self) -> str | None:
        if not self._settings.remember_last_bucket:
            return None
        return self._settings.last_bucket or None

    def connect(
        self,
        *,
        profile_name: str,
        on_success: Callable[[list[Bucket]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Connecting using profile '%s'", profile_name)
        self._submit(
            f"connect with profile '{profile_name}'",
            lambda: self._controller.connect_with_profile(profile_name),
            on_success,
            on_error,
            on_done,
        )

    def connect_from_env(
        self,
        *,
        on_success: Callable[[list[Bucket]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Connecting using environment credentials")
        self._submit("connect from environment", self._controller.connect_from_env, on_success, on_error, on_done)

    def refresh_buckets(
        self,
        *,
        on_success: Callable[[list[Bucket]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Refreshing buckets")
        self._submit("bucket refresh", self._controller.refresh_buckets, on_success, on_error, on_done)

    def list_entries(
        self,
        *,
        bucket_name: str,
        prefix: str = "",
        delimiter: str = DELIMITER,
        on_success: Callable[[Listing], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Listing '%s' in bucket '%s'", prefix, bucket_name)
        max_keys = self._settings.list_limit
        self._submit(
            f"list '{prefix}' in bucket '{bucket_name}'",
            lambda: self._controller.list_entries(
                bucket_name=bucket_name,
                prefix=prefix,
                delimiter=delimiter,
                max_keys=max_keys,
            ),
            on_success,
            on_error,
            on_done,
        )

    def delete_entry(
        self,
        *,
        bucket_name: str,
        key: str,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Deleting '%s' from bucket '%s'", key, bucket_name)
        self._submit(
            f"delete '{key}'",
            lambda: self._controller.delete_entry(bucket_name=bucket_name, key=key),
            lambda _result: on_success(),
            on_error,
            on_done,
        )

    def transfer_entry(
        self,
        *,
        bucket_name: str,
        source_key: str,
        target_prefix: str,
        mode: TransferMode,
        on_success: Callable[[TransferResult], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Transfer (%s) '%s' -> '%s'", TransferMode(mode).value, source_key, target_prefix)
        self._submit(
            f"{TransferMode(mode).value} '{source_key}'",
            lambda: self._controller.transfer_entry(
                bucket_name=bucket_name,
                source_key=source_key,
                target_prefix=target_prefix,
                mode=mode,
            ),
            on_success,
            on_error,
            on_done,
        )

    def issue_upload_target(
        self,
        *,
        bucket_name: str,
        key: str,
        content_type: str,
        on_success: Callable[[UploadTarget], None],
        on_error: ErrorFn,
    ) -> None:
        expires_in = self._settings.presign_expires_in
        self._submit(
            f"sign upload for '{key}'",
            lambda: self._controller.issue_upload_target(
                bucket_name=bucket_name,
                key=key,
                content_type=content_type,
                expires_in=expires_in,
            ),
            on_success,
            on_error,
        )

    def generate_presigned_url(
        self,
        *,
        bucket_name: str,
        key: str,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
    ) -> None:
        expires_in = self._settings.presign_expires_in
        self._submit(
            f"sign link for '{key}'",
            lambda: self._controller.generate_presigned_url(
                bucket_name=bucket_name,
                key=key,
                method="get",
                expires_in=expires_in,
            ),
            on_success,
            on_error,
        )

    def upload_object(
        self,
        *,
        bucket_name: str,
        key: str,
        source_path: str,
        content_type: str | None = None,
        on_progress: Callable[[int], None] | None = None,
        on_success: DoneFn | None = None,
        on_error: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        progress_callback = None
        if on_progress:
            progress_callback = lambda total: self._dispatch(lambda: on_progress(total))

        LOGGER.debug("Uploading '%s' to '%s' in bucket '%s'", source_path, key, bucket_name)
        self._submit(
            f"upload '{key}'",
            lambda: self._controller.upload_object(
                bucket_name=bucket_name,
                key=key,
                source_path=source_path,
                content_type=content_type,
                progress_callback=progress_callback,
            ),
            (lambda _result: on_success()) if on_success else None,
            on_error,
            on_done,
        )

    def _submit(
        self,
        description: str,
        operation: Callable[[], T],
        on_success: Callable[[T], None] | None,
        on_error: ErrorFn | None,
        on_done: DoneFn | None = None,
    ) -> None:
        def task() -> None:
            try:
                result = operation()
            except StoreError as exc:
                LOGGER.exception("Store error during %s", description)
                if on_error:
                    self._dispatch(partial(on_error, exc))
            except Exception as exc:
                LOGGER.exception("Unexpected error during %s", description)
                if on_error:
                    self._dispatch(partial(on_error, exc))
            else:
                if on_success:
                    self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        threading.Thread(target=task, daemon=True).start()
