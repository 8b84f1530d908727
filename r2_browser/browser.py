from __future__ import annotations
"""Navigation state machine for browsing buckets as folders.

:class:`FileBrowser` owns everything a view needs to draw the current
screen: the bucket list or the listing of one ``(bucket, prefix)``, the
search text, the sort order, the selected file and the clipboard. It talks
to the store through an :class:`~r2_browser.presenter.R2BrowserPresenter`
(or anything with the same callback-style methods) and expects every
callback to arrive on the thread that owns the browser.

Listings are tagged with a sequence number when requested. A response is
only applied if no newer navigation was started in the meantime, so the
screen always shows the most recently requested location.
"""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Iterable, Optional, Protocol, Sequence

from .models import (
    DELIMITER,
    Bucket,
    ClipboardEntry,
    Listing,
    Location,
    ObjectEntry,
    TransferMode,
    TransferResult,
    TransferStatus,
    UploadTarget,
    VirtualFolder,
)
from .namespace import normalize_prefix, parent_prefix, prefix_for_segments, split_segments
from .optimistic import apply_optimistic
from .services import ObjectNotFoundError
from .transfer import Clipboard, PartialTransferError, destination_key
from .ui_utils import compose_key, guess_content_type, upload_name
from .view import ListingView, SortField, SortSpec, build_view, filter_buckets


LOGGER = logging.getLogger(__name__)


class BrowserStateError(RuntimeError):
    """Raised when an action does not make sense in the current state."""


class TransferInProgressError(BrowserStateError):
    """Raised when a copy/move is requested while another one is pending."""


class BrowserLevel(str, Enum):
    BUCKETS = "buckets"
    FILES = "files"


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A user-facing message; views decide how to show it."""

    level: NoticeLevel
    message: str
    error: Optional[Exception] = None


class BrowserBackend(Protocol):
    """The subset of :class:`R2BrowserPresenter` used by the browser."""

    sort_spec: SortSpec

    def refresh_buckets(self, *, on_success, on_error, on_done=None) -> None: ...

    def connect(self, *, profile_name: str, on_success, on_error, on_done=None) -> None: ...

    def list_entries(self, *, bucket_name: str, prefix: str, delimiter: str, on_success, on_error, on_done=None) -> None: ...

    def delete_entry(self, *, bucket_name: str, key: str, on_success, on_error, on_done=None) -> None: ...

    def transfer_entry(
        self, *, bucket_name: str, source_key: str, target_prefix: str, mode: TransferMode, on_success, on_error, on_done=None
    ) -> None: ...

    def issue_upload_target(self, *, bucket_name: str, key: str, content_type: str, on_success, on_error) -> None: ...

    def generate_presigned_url(self, *, bucket_name: str, key: str, on_success, on_error) -> None: ...

    def upload_object(
        self, *, bucket_name: str, key: str, source_path: str, content_type=None, on_success=None, on_error=None, on_done=None
    ) -> None: ...

    def update_sort(self, sort: SortSpec) -> None: ...

    def update_last_connection(self, connection: str) -> None: ...

    def update_last_bucket(self, bucket: str) -> None: ...

    def maybe_auto_connect_profile(self) -> str | None: ...

    def remembered_bucket(self) -> str | None: ...


ChangeFn = Callable[["FileBrowser"], None]
NoticeFn = Callable[[Notice], None]


class FileBrowser:
    """Bucket/folder navigation, listing view, clipboard and mutations."""

    def __init__(
        self,
        backend: BrowserBackend,
        *,
        delimiter: str = DELIMITER,
        sort: SortSpec | None = None,
        on_change: ChangeFn | None = None,
        on_notice: NoticeFn | None = None,
    ) -> None:
        self._backend = backend
        self._delimiter = delimiter
        self._on_change = on_change
        self._on_notice = on_notice
        self._sort = sort or backend.sort_spec
        self._search = ""
        self._buckets: list[Bucket] = []
        self._location = Location()
        self._listing: Listing | None = None
        self._pending: Location | None = None
        self._listing_seq = 0
        self._bucket_seq = 0
        self._generation = 0
        self._selected: ObjectEntry | None = None
        self._clipboard = Clipboard()
        self._transfer_pending = False
        self._uploads_pending = 0

    # -- state ---------------------------------------------------------

    @property
    def level(self) -> BrowserLevel:
        return BrowserLevel.BUCKETS if self._location.is_bucket_list else BrowserLevel.FILES

    @property
    def location(self) -> Location:
        return self._location

    @property
    def bucket(self) -> str | None:
        return self._location.bucket

    @property
    def prefix(self) -> str:
        return self._location.prefix

    @property
    def pending_location(self) -> Location | None:
        return self._pending

    @property
    def loading(self) -> bool:
        return self._pending is not None

    @property
    def buckets(self) -> list[Bucket]:
        return list(self._buckets)

    @property
    def listing(self) -> Listing | None:
        return self._listing

    @property
    def files(self) -> tuple[ObjectEntry, ...]:
        return self._listing.files if self._listing else ()

    @property
    def folders(self) -> tuple[VirtualFolder, ...]:
        return self._listing.folders if self._listing else ()

    @property
    def search(self) -> str:
        return self._search

    @property
    def sort(self) -> SortSpec:
        return self._sort

    @property
    def selected(self) -> ObjectEntry | None:
        return self._selected

    @property
    def clipboard(self) -> ClipboardEntry | None:
        return self._clipboard.entry

    @property
    def transfer_pending(self) -> bool:
        return self._transfer_pending

    @property
    def uploads_pending(self) -> int:
        return self._uploads_pending

    @property
    def breadcrumbs(self) -> list[str]:
        return split_segments(self._location.prefix, self._delimiter)

    def view(self) -> ListingView:
        return build_view(self.files, self.folders, self._search, self._sort)

    def visible_buckets(self) -> list[Bucket]:
        return filter_buckets(self._buckets, self._search)

    def set_search(self, text: str) -> None:
        self._search = text or ""
        self._changed()

    def sort_by(self, field: SortField | str) -> SortSpec:
        self._sort = self._sort.toggle(field)
        self._backend.update_sort(self._sort)
        self._changed()
        return self._sort

    # -- navigation ----------------------------------------------------

    def connect(self, profile_name: str, *, reopen_bucket: str | None = None) -> None:
        """Switch to ``profile_name`` and show its bucket list.

        When ``reopen_bucket`` is among the returned buckets it is opened
        straight away.
        """
        self._clipboard.clear()
        self._leave_bucket()
        seq = self._next_bucket_seq()

        def connected(buckets: Sequence[Bucket]) -> None:
            if seq != self._bucket_seq:
                LOGGER.debug("Discarding stale connection #%d to '%s'", seq, profile_name)
                return
            self._backend.update_last_connection(profile_name)
            self._apply_buckets(seq, buckets)
            if reopen_bucket and self._location.is_bucket_list and self._pending is None:
                if any(bucket.name == reopen_bucket for bucket in buckets):
                    self.open_bucket(reopen_bucket)

        self._backend.connect(
            profile_name=profile_name,
            on_success=connected,
            on_error=lambda exc: self._buckets_failed(seq, exc),
        )

    def resume(self) -> str | None:
        """Reconnect to the remembered profile and bucket, if any."""
        profile_name = self._backend.maybe_auto_connect_profile()
        if not profile_name:
            return None
        LOGGER.debug("Resuming session with profile '%s'", profile_name)
        self.connect(profile_name, reopen_bucket=self._backend.remembered_bucket())
        return profile_name

    def load_buckets(self) -> None:
        seq = self._next_bucket_seq()
        self._backend.refresh_buckets(
            on_success=lambda buckets: self._apply_buckets(seq, buckets),
            on_error=lambda exc: self._buckets_failed(seq, exc),
        )

    def open_bucket(self, name: str) -> None:
        if not name:
            raise BrowserStateError("Bucket name cannot be empty")
        self._search = ""
        self._fetch(Location(name, ""))

    def open_folder(self, prefix: str | VirtualFolder) -> None:
        bucket = self._require_bucket()
        if isinstance(prefix, VirtualFolder):
            prefix = prefix.prefix
        self._search = ""
        self._fetch(Location(bucket, normalize_prefix(prefix, self._delimiter)))

    def open_root(self) -> None:
        self.open_folder("")

    def open_breadcrumb(self, index: int) -> None:
        segments = self.breadcrumbs
        if not 0 <= index < len(segments):
            raise IndexError(f"No breadcrumb at position {index}")
        self.open_folder(prefix_for_segments(segments[: index + 1], self._delimiter))

    def go_up(self) -> None:
        if self._location.is_bucket_list:
            return
        self._search = ""
        if self._location.is_root:
            self._leave_bucket()
            return
        self._fetch(Location(self._location.bucket, parent_prefix(self._location.prefix, self._delimiter)))

    def refresh(self) -> None:
        if self._location.is_bucket_list:
            self.load_buckets()
        else:
            self._fetch(self._location)

    # -- selection -----------------------------------------------------

    def select_entry(self, entry: ObjectEntry | None) -> None:
        self._selected = entry
        self._changed()

    def request_link(self, entry: ObjectEntry, on_ready: Callable[[str], None]) -> None:
        self._backend.generate_presigned_url(
            bucket_name=self._require_bucket(),
            key=entry.key,
            on_success=on_ready,
            on_error=lambda exc: self._notify(NoticeLevel.ERROR, f"Could not create link: {exc}", exc),
        )

    # -- clipboard and transfers ---------------------------------------

    def copy_entry(self, entry: ObjectEntry) -> ClipboardEntry:
        clip = self._clipboard.copy(entry)
        self._changed()
        return clip

    def cut_entry(self, entry: ObjectEntry) -> ClipboardEntry:
        clip = self._clipboard.cut(entry)
        self._changed()
        return clip

    def cancel_clipboard(self) -> None:
        self._clipboard.clear()
        self._changed()

    def paste(self) -> TransferResult | None:
        clip = self._clipboard.entry
        if clip is None:
            raise BrowserStateError("Clipboard is empty")
        return self.request_transfer(clip.entry, self._location.prefix, clip.mode)

    def drop(self, entry: ObjectEntry, folder_prefix: str | VirtualFolder) -> TransferResult | None:
        if isinstance(folder_prefix, VirtualFolder):
            folder_prefix = folder_prefix.prefix
        return self.request_transfer(entry, folder_prefix, TransferMode.MOVE)

    def request_transfer(
        self,
        source: ObjectEntry,
        target_prefix: str,
        mode: TransferMode | str,
    ) -> TransferResult | None:
        """Copy or move ``source`` into ``target_prefix`` of the current bucket.

        Returns the ``NO_OP`` result straight away when the object is already
        there; otherwise returns ``None`` and reports through notices once the
        store answers.
        """
        bucket = self._require_bucket()
        mode = TransferMode(mode)
        target = destination_key(source.key, target_prefix, self._delimiter)
        if target == source.key:
            self._notify(NoticeLevel.INFO, "Source and destination are the same")
            return TransferResult(TransferStatus.NO_OP, mode, source.key, target)
        if self._transfer_pending:
            raise TransferInProgressError("Another copy or move is still running")

        self._transfer_pending = True
        self._changed()
        self._backend.transfer_entry(
            bucket_name=bucket,
            source_key=source.key,
            target_prefix=target_prefix,
            mode=mode,
            on_success=self._transfer_succeeded,
            on_error=lambda exc: self._transfer_failed(mode, exc),
            on_done=self._transfer_done,
        )
        return None

    # -- deletion --------------------------------------------------------

    def request_delete(self, key: str) -> None:
        """Remove ``key`` from the listing now, then delete it in the store."""
        bucket = self._require_bucket()
        if self._listing is None:
            raise BrowserStateError("No listing loaded")
        generation = self._generation
        change = apply_optimistic(
            self._listing,
            lambda listing: listing.without_file(key),
            self._commit_listing,
        )
        self._changed()

        def failed(exc: Exception) -> None:
            if isinstance(exc, ObjectNotFoundError):
                self._notify(NoticeLevel.WARNING, f"'{key}' no longer exists", exc)
                self.refresh()
                return
            if generation == self._generation:
                change.revert()
            self._notify(NoticeLevel.ERROR, f"Delete failed: {exc}", exc)
            self._changed()

        self._backend.delete_entry(
            bucket_name=bucket,
            key=key,
            on_success=lambda: self._delete_succeeded(key),
            on_error=failed,
        )

    # -- uploads ---------------------------------------------------------

    def upload_files(self, source_paths: Iterable[str]) -> list[str]:
        """Start one independent upload per local file into the current folder."""
        bucket = self._require_bucket()
        keys = []
        for source_path in source_paths:
            name = upload_name(source_path)
            key = compose_key(self._location.prefix, name)
            self._uploads_pending += 1
            self._backend.upload_object(
                bucket_name=bucket,
                key=key,
                source_path=source_path,
                content_type=guess_content_type(name),
                on_success=lambda key=key: self.upload_completed(key),
                on_error=lambda exc, name=name: self._notify(
                    NoticeLevel.ERROR, f"Upload of {name} failed: {exc}", exc
                ),
                on_done=self._upload_done,
            )
            keys.append(key)
        self._changed()
        return keys

    def request_upload_target(
        self,
        name: str,
        on_ready: Callable[[UploadTarget], None],
        *,
        content_type: str | None = None,
    ) -> str:
        """Ask for a presigned PUT target for ``name`` in the current folder.

        Whoever sends the bytes should call :meth:`upload_completed` after.
        """
        bucket = self._require_bucket()
        key = compose_key(self._location.prefix, name)
        self._backend.issue_upload_target(
            bucket_name=bucket,
            key=key,
            content_type=content_type or guess_content_type(name),
            on_success=on_ready,
            on_error=lambda exc: self._notify(NoticeLevel.ERROR, f"Could not prepare upload: {exc}", exc),
        )
        return key

    def upload_completed(self, key: str) -> None:
        self._notify(NoticeLevel.SUCCESS, f"Uploaded {key.rsplit(self._delimiter, 1)[-1]}")
        if not self._location.is_bucket_list:
            self.refresh()

    # -- internals -------------------------------------------------------

    def _leave_bucket(self) -> None:
        if self._location.bucket:
            LOGGER.debug("Leaving bucket '%s'", self._location.bucket)
        # drop whatever listing is still in flight
        self._listing_seq += 1
        self._pending = None
        self._search = ""
        self._location = Location()
        self._replace_listing(None)
        self._selected = None
        self._changed()

    def _fetch(self, location: Location) -> None:
        self._listing_seq += 1
        seq = self._listing_seq
        self._pending = location
        LOGGER.debug("Fetching #%d '%s/%s'", seq, location.bucket, location.prefix)
        self._changed()
        self._backend.list_entries(
            bucket_name=location.bucket,
            prefix=location.prefix,
            delimiter=self._delimiter,
            on_success=lambda listing: self._apply_listing(seq, location, listing),
            on_error=lambda exc: self._listing_failed(seq, location, exc),
        )

    def _apply_listing(self, seq: int, location: Location, listing: Listing) -> None:
        if seq != self._listing_seq:
            LOGGER.debug("Discarding stale listing #%d for '%s/%s'", seq, location.bucket, location.prefix)
            return
        entered_bucket = location.bucket != self._location.bucket
        self._pending = None
        self._location = location
        self._replace_listing(listing)
        if self._selected is not None and listing.find_file(self._selected.key) is None:
            self._selected = None
        if entered_bucket:
            self._backend.update_last_bucket(location.bucket)
        self._changed()

    def _listing_failed(self, seq: int, location: Location, exc: Exception) -> None:
        if seq != self._listing_seq:
            LOGGER.debug("Ignoring error from stale listing #%d: %s", seq, exc)
            return
        self._pending = None
        self._notify(NoticeLevel.ERROR, f"Failed to load files: {exc}", exc)
        self._changed()

    def _next_bucket_seq(self) -> int:
        self._bucket_seq += 1
        return self._bucket_seq

    def _apply_buckets(self, seq: int, buckets: Sequence[Bucket]) -> None:
        if seq != self._bucket_seq:
            LOGGER.debug("Discarding stale bucket list #%d", seq)
            return
        self._buckets = list(buckets)
        self._changed()

    def _buckets_failed(self, seq: int, exc: Exception) -> None:
        if seq != self._bucket_seq:
            return
        self._notify(NoticeLevel.ERROR, f"Failed to load buckets: {exc}", exc)

    def _replace_listing(self, listing: Listing | None) -> None:
        self._generation += 1
        self._listing = listing

    def _commit_listing(self, listing: Listing) -> None:
        self._listing = listing

    def _delete_succeeded(self, key: str) -> None:
        if self._selected is not None and self._selected.key == key:
            self._selected = None
        self._clipboard.clear_if_matches(key)
        self._notify(NoticeLevel.SUCCESS, "File deleted")
        self._changed()

    def _transfer_succeeded(self, result: TransferResult) -> None:
        if result.is_no_op:
            self._notify(NoticeLevel.INFO, "Source and destination are the same")
            return
        verb = "Moved" if result.mode is TransferMode.MOVE else "Copied"
        self._clipboard.clear_if_matches(result.source_key)
        self._notify(NoticeLevel.SUCCESS, f"{verb} successfully")
        self.refresh()

    def _transfer_failed(self, mode: TransferMode, exc: Exception) -> None:
        if isinstance(exc, PartialTransferError):
            self._notify(
                NoticeLevel.ERROR,
                f"'{exc.destination_key}' was created but '{exc.source_key}' could not be removed; "
                "the object now exists in both places",
                exc,
            )
            self.refresh()
            return
        if isinstance(exc, ObjectNotFoundError):
            self._notify(NoticeLevel.WARNING, f"Nothing to {mode.value}: {exc}", exc)
            self.refresh()
            return
        self._notify(NoticeLevel.ERROR, f"Failed to {mode.value}: {exc}", exc)

    def _transfer_done(self) -> None:
        self._transfer_pending = False
        self._changed()

    def _upload_done(self) -> None:
        self._uploads_pending = max(self._uploads_pending - 1, 0)
        self._changed()

    def _require_bucket(self) -> str:
        if self._location.bucket is None:
            raise BrowserStateError("No bucket is open")
        return self._location.bucket

    def _notify(self, level: NoticeLevel, message: str, error: Exception | None = None) -> None:
        LOGGER.debug("Notice (%s): %s", level.value, message)
        if self._on_notice:
            self._on_notice(Notice(level, message, error))

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)
