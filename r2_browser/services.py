from __future__ import annotations
"""Business logic for talking to R2 (or any S3-compatible store)."""
from contextlib import contextmanager
from dataclasses import replace
import logging
from typing import Callable, Iterator, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .models import DELIMITER, Bucket, Listing, UploadTarget
from .namespace import project


LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 1000
NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NoSuchBucket", "NotFound"})


class StoreError(RuntimeError):
    """Base class for failures reported by the object store."""


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or rejects the request."""


class ObjectNotFoundError(StoreError):
    """Raised when the targeted bucket or key no longer exists."""


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return ""


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        if _error_code(exc) in NOT_FOUND_CODES:
            raise ObjectNotFoundError(f"{action}: {exc}") from exc
        raise StoreUnavailableError(f"{action}: {exc}") from exc


class R2StorageService:
    """Wraps the boto3 S3 client independent of any UI technology."""

    def __init__(
        self,
        client_factory: Callable[..., object] | None = None,
        *,
        region_name: str | None = "auto",
        page_size: int = PAGE_SIZE,
    ):
        self._client_factory = client_factory or boto3.client
        self._region_name = region_name
        self._page_size = max(int(page_size), 1)

    def list_buckets(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
    ) -> list[Bucket]:
        """Return the available buckets.

        Raises:
            StoreUnavailableError: when unable to connect or list buckets.
        """
        client = self._create_client(endpoint_url, access_key, secret_key)
        with _store_call("Unable to list buckets"):
            response = client.list_buckets()
        return [
            Bucket(name=bucket.get("Name") or "Unknown", creation_date=bucket.get("CreationDate"))
            for bucket in response.get("Buckets", [])
        ]

    def list_entries(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        prefix: str = "",
        delimiter: str = DELIMITER,
        max_keys: int = 1000,
    ) -> Listing:
        """Return the files and folders one level below ``prefix``.

        Follows continuation tokens until the listing is complete or
        ``max_keys`` rows (objects plus common prefixes) have been read.
        """
        client = self._create_client(endpoint_url, access_key, secret_key)
        contents: list[dict] = []
        common_prefixes: list[dict] = []
        remaining = max(int(max_keys), 1)
        token: str | None = None
        has_more = False

        while remaining > 0:
            params = {
                "Bucket": bucket_name,
                "Prefix": prefix,
                "MaxKeys": min(remaining, self._page_size),
            }
            if delimiter:
                params["Delimiter"] = delimiter
            if token:
                params["ContinuationToken"] = token

            with _store_call(f"Unable to list '{bucket_name}/{prefix}'"):
                response = client.list_objects_v2(**params)
            page_contents = response.get("Contents", [])
            page_prefixes = response.get("CommonPrefixes", [])
            contents.extend(page_contents)
            common_prefixes.extend(page_prefixes)
            remaining -= len(page_contents) + len(page_prefixes)

            token = response.get("NextContinuationToken")
            if not (response.get("IsTruncated", False) and token):
                break
            if remaining <= 0:
                has_more = True

        LOGGER.debug(
            "Listed %d object(s) and %d prefix(es) in '%s/%s'",
            len(contents),
            len(common_prefixes),
            bucket_name,
            prefix,
        )
        listing = project(bucket_name, prefix, contents, common_prefixes, delimiter=delimiter)
        if has_more:
            listing = replace(listing, has_more=True)
        return listing

    def delete_entry(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        key: str,
    ) -> None:
        """Delete an object from the target bucket/key."""

        client = self._create_client(endpoint_url, access_key, secret_key)
        with _store_call(f"Unable to delete '{key}'"):
            client.delete_object(Bucket=bucket_name, Key=key)

    def copy_entry(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        source_key: str,
        destination_key: str,
    ) -> None:
        """Server-side copy of ``source_key`` to ``destination_key`` in one bucket."""

        client = self._create_client(endpoint_url, access_key, secret_key)
        with _store_call(f"Unable to copy '{source_key}' to '{destination_key}'"):
            client.copy_object(
                Bucket=bucket_name,
                Key=destination_key,
                CopySource={"Bucket": bucket_name, "Key": source_key},
            )

    def generate_presigned_url(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        key: str,
        method: str = "get",
        expires_in: int = 3600,
        content_type: str | None = None,
    ) -> str:
        """Create a presigned URL for the requested object operation."""

        operation = method.strip().lower()
        if operation not in {"get", "put"}:
            raise ValueError("method must be either 'get' or 'put'")
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")

        client_method = "get_object" if operation == "get" else "put_object"
        params: dict[str, str] = {"Bucket": bucket_name, "Key": key}
        if content_type:
            params["ResponseContentType" if operation == "get" else "ContentType"] = content_type

        client = self._create_client(endpoint_url, access_key, secret_key)
        with _store_call(f"Unable to sign '{key}'"):
            return client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=expires_in,
            )

    def issue_upload_target(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        key: str,
        content_type: str = "",
        expires_in: int = 3600,
    ) -> UploadTarget:
        """Return a presigned PUT target for uploading ``key``."""

        url = self.generate_presigned_url(
            endpoint_url=endpoint_url,
            access_key=access_key,
            secret_key=secret_key,
            bucket_name=bucket_name,
            key=key,
            method="put",
            expires_in=expires_in,
            content_type=content_type or None,
        )
        headers = {"Content-Type": content_type} if content_type else {}
        return UploadTarget(
            bucket=bucket_name,
            key=key,
            url=url,
            content_type=content_type,
            expires_in=expires_in,
            headers=headers,
        )

    def upload_object(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        key: str,
        source_path: str,
        content_type: str | None = None,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> None:
        """Upload a local file to the target bucket/key."""

        client = self._create_client(endpoint_url, access_key, secret_key)
        extra_args = {"ContentType": content_type} if content_type else None
        with _store_call(f"Unable to upload '{key}'"):
            client.upload_file(
                source_path,
                bucket_name,
                key,
                Callback=self._build_progress_callback(progress_callback),
                ExtraArgs=extra_args,
            )

    def _create_client(self, endpoint_url: str, access_key: str, secret_key: str):
        config = Config(signature_version="s3v4")
        kwargs = {}
        if self._region_name:
            kwargs["region_name"] = self._region_name
        return self._client_factory(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=config,
            **kwargs,
        )

    def _build_progress_callback(self, progress_callback: Optional[Callable[[int], None]]):
        if not progress_callback:
            return None

        transferred = 0

        def _callback(bytes_amount: int) -> None:
            nonlocal transferred
            transferred += bytes_amount
            progress_callback(transferred)

        return _callback
