from __future__ import annotations
"""Synchronous facade tying connections, profiles and store operations together."""

from typing import Callable, Mapping, Optional

from .models import DELIMITER, Bucket, Listing, TransferMode, TransferResult, UploadTarget
from .profiles import ConnectionProfile, ProfileStorage, profile_from_env
from .services import R2StorageService
from .transfer import TransferCoordinator


class NotConnectedError(RuntimeError):
    """Raised when a store operation is attempted before connecting."""


class R2BrowserController:
    """Coordinates user actions with the :class:`R2StorageService`."""

    def __init__(
        self,
        service: R2StorageService | None = None,
        storage: ProfileStorage | None = None,
    ):
        self._service = service or R2StorageService()
        self._storage = storage or ProfileStorage()
        self._connection_params: dict[str, str] | None = None
        self._profiles: list[ConnectionProfile] = self._storage.load()
        self._selected_profile: str | None = None
        self._transfers = TransferCoordinator(self)

    @property
    def is_connected(self) -> bool:
        return self._connection_params is not None

    @property
    def selected_profile(self) -> str | None:
        return self._selected_profile

    def list_profiles(self) -> list[ConnectionProfile]:
        return list(self._profiles)

    def save_profile(self, profile: ConnectionProfile, *, original_name: str | None = None) -> None:
        if original_name and original_name != profile.name:
            self._profiles = [p for p in self._profiles if p.name != original_name]
        self._upsert_profile(profile)
        self._persist_profiles()

    def delete_profile(self, name: str) -> None:
        before = len(self._profiles)
        self._profiles = [p for p in self._profiles if p.name != name]
        if len(self._profiles) == before:
            raise ValueError(f"Profile '{name}' does not exist")
        if self._selected_profile == name:
            self._selected_profile = None
        self._persist_profiles()

    def get_profile(self, name: str) -> ConnectionProfile:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    def connect_with_profile(self, name: str) -> list[Bucket]:
        profile = self.get_profile(name)
        buckets = self._connect_profile(profile)
        self._selected_profile = name
        return buckets

    def connect_from_env(self, environ: Mapping[str, str] | None = None) -> list[Bucket]:
        profile = profile_from_env(environ)
        if profile is None:
            raise NotConnectedError(
                "Set R2_ACCOUNT_ID (or R2_ENDPOINT_URL), R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY"
            )
        buckets = self._connect_profile(profile)
        self._selected_profile = None
        return buckets

    def connect(self, *, endpoint_url: str, access_key: str, secret_key: str) -> list[Bucket]:
        connection_params = {
            "endpoint_url": endpoint_url,
            "access_key": access_key,
            "secret_key": secret_key,
        }
        buckets = self._service.list_buckets(**connection_params)
        self._connection_params = connection_params
        return buckets

    def refresh_buckets(self) -> list[Bucket]:
        params = self._require_connection()
        return self._service.list_buckets(**params)

    def list_entries(
        self,
        *,
        bucket_name: str,
        prefix: str = "",
        delimiter: str = DELIMITER,
        max_keys: int = 1000,
    ) -> Listing:
        params = self._require_connection()
        return self._service.list_entries(
            bucket_name=bucket_name,
            prefix=prefix,
            delimiter=delimiter,
            max_keys=max_keys,
            **params,
        )

    def delete_entry(self, *, bucket_name: str, key: str) -> None:
        params = self._require_connection()
        self._service.delete_entry(bucket_name=bucket_name, key=key, **params)

    def copy_entry(self, *, bucket_name: str, source_key: str, destination_key: str) -> None:
        params = self._require_connection()
        self._service.copy_entry(
            bucket_name=bucket_name,
            source_key=source_key,
            destination_key=destination_key,
            **params,
        )

    def transfer_entry(
        self,
        *,
        bucket_name: str,
        source_key: str,
        target_prefix: str,
        mode: TransferMode,
    ) -> TransferResult:
        self._require_connection()
        return self._transfers.execute(
            bucket_name=bucket_name,
            source_key=source_key,
            target_prefix=target_prefix,
            mode=mode,
        )

    def issue_upload_target(
        self,
        *,
        bucket_name: str,
        key: str,
        content_type: str = "",
        expires_in: int = 3600,
    ) -> UploadTarget:
        params = self._require_connection()
        return self._service.issue_upload_target(
            bucket_name=bucket_name,
            key=key,
            content_type=content_type,
            expires_in=expires_in,
            **params,
        )

    def generate_presigned_url(
        self,
        *,
        bucket_name: str,
        key: str,
        method: str = "get",
        expires_in: int = 3600,
        content_type: str | None = None,
    ) -> str:
        params = self._require_connection()
        return self._service.generate_presigned_url(
            bucket_name=bucket_name,
            key=key,
            method=method,
            expires_in=expires_in,
            content_type=content_type,
            **params,
        )

    def upload_object(
        self,
        *,
        bucket_name: str,
        key: str,
        source_path: str,
        content_type: str | None = None,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> None:
        params = self._require_connection()
        self._service.upload_object(
            bucket_name=bucket_name,
            key=key,
            source_path=source_path,
            content_type=content_type,
            progress_callback=progress_callback,
            **params,
        )

    def _connect_profile(self, profile: ConnectionProfile) -> list[Bucket]:
        return self.connect(
            endpoint_url=profile.endpoint_url,
            access_key=profile.access_key,
            secret_key=profile.secret_key,
        )

    def _require_connection(self) -> dict[str, str]:
        if not self._connection_params:
            raise NotConnectedError("Not connected to the object store")
        return self._connection_params

    def _upsert_profile(self, profile: ConnectionProfile) -> None:
        for idx, existing in enumerate(self._profiles):
            if existing.name == profile.name:
                self._profiles[idx] = profile
                break
        else:
            self._profiles.append(profile)

    def _persist_profiles(self) -> None:
        self._storage.save(self._profiles)
