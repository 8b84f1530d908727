import unittest

from r2_browser.browser import (
    BrowserLevel,
    BrowserStateError,
    FileBrowser,
    NoticeLevel,
    TransferInProgressError,
)
from r2_browser.models import (
    Bucket,
    Listing,
    Location,
    ObjectEntry,
    TransferMode,
    TransferResult,
    TransferStatus,
    UploadTarget,
    VirtualFolder,
)
from r2_browser.services import ObjectNotFoundError, StoreUnavailableError
from r2_browser.transfer import PartialTransferError
from r2_browser.view import SortDirection, SortField, SortSpec


class FakeBackend:
    """Records requests and holds callbacks until a test resolves them."""

    def __init__(self):
        self.sort_spec = SortSpec()
        self.bucket_requests = []
        self.list_requests = []
        self.delete_requests = []
        self.transfer_requests = []
        self.upload_requests = []
        self.upload_target_requests = []
        self.link_requests = []
        self.saved_sorts = []
        self.last_buckets = []
        self.last_connections = []
        self.auto_connect_profile = None
        self.remembered = None

    def connect(self, *, profile_name, on_success, on_error, on_done=None):
        self.bucket_requests.append({"profile_name": profile_name, "on_success": on_success, "on_error": on_error})

    def refresh_buckets(self, *, on_success, on_error, on_done=None):
        self.bucket_requests.append({"on_success": on_success, "on_error": on_error})

    def list_entries(self, *, bucket_name, prefix, delimiter, on_success, on_error, on_done=None):
        self.list_requests.append(
            {
                "bucket_name": bucket_name,
                "prefix": prefix,
                "delimiter": delimiter,
                "on_success": on_success,
                "on_error": on_error,
            }
        )

    def delete_entry(self, *, bucket_name, key, on_success, on_error, on_done=None):
        self.delete_requests.append(
            {"bucket_name": bucket_name, "key": key, "on_success": on_success, "on_error": on_error}
        )

    def transfer_entry(self, *, bucket_name, source_key, target_prefix, mode, on_success, on_error, on_done=None):
        self.transfer_requests.append(
            {
                "bucket_name": bucket_name,
                "source_key": source_key,
                "target_prefix": target_prefix,
                "mode": mode,
                "on_success": on_success,
                "on_error": on_error,
                "on_done": on_done,
            }
        )

    def issue_upload_target(self, *, bucket_name, key, content_type, on_success, on_error):
        self.upload_target_requests.append(
            {"bucket_name": bucket_name, "key": key, "content_type": content_type, "on_success": on_success}
        )

    def generate_presigned_url(self, *, bucket_name, key, on_success, on_error):
        self.link_requests.append({"bucket_name": bucket_name, "key": key, "on_success": on_success})

    def upload_object(
        self,
        *,
        bucket_name,
        key,
        source_path,
        content_type=None,
        on_success=None,
        on_error=None,
        on_done=None,
    ):
        self.upload_requests.append(
            {
                "bucket_name": bucket_name,
                "key": key,
                "source_path": source_path,
                "content_type": content_type,
                "on_success": on_success,
                "on_error": on_error,
                "on_done": on_done,
            }
        )

    def update_sort(self, sort):
        self.saved_sorts.append(sort)

    def update_last_bucket(self, bucket):
        self.last_buckets.append(bucket)

    def update_last_connection(self, connection):
        self.last_connections.append(connection)

    def maybe_auto_connect_profile(self):
        return self.auto_connect_profile

    def remembered_bucket(self):
        return self.remembered


A = ObjectEntry(key="docs/A.txt", size=1)
B = ObjectEntry(key="docs/B.txt", size=2)
C = ObjectEntry(key="docs/C.txt", size=3)


def _listing(bucket, prefix, files=(), folders=()):
    return Listing(bucket=bucket, prefix=prefix, files=tuple(files), folders=tuple(folders))


class FileBrowserTestCase(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend()
        self.notices = []
        self.changes = 0
        self.browser = FileBrowser(self.backend, on_notice=self.notices.append, on_change=self._on_change)

    def _on_change(self, _browser):
        self.changes += 1

    def resolve_listing(self, index=-1, files=(), folders=()):
        request = self.backend.list_requests[index]
        request["on_success"](_listing(request["bucket_name"], request["prefix"], files, folders))

    def open_docs(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing(folders=[VirtualFolder(prefix="docs/", name="docs")])
        self.browser.open_folder("docs/")
        self.resolve_listing(files=[A, B, C])


class NavigationTests(FileBrowserTestCase):
    def test_starts_at_bucket_list(self):
        self.assertEqual(BrowserLevel.BUCKETS, self.browser.level)
        self.assertEqual(Location(), self.browser.location)
        self.assertEqual((), self.browser.files)

    def test_load_buckets(self):
        self.browser.load_buckets()
        self.backend.bucket_requests[0]["on_success"]([Bucket(name="media"), Bucket(name="logs")])

        self.assertEqual(["media", "logs"], [bucket.name for bucket in self.browser.buckets])
        self.browser.set_search("MED")
        self.assertEqual(["media"], [bucket.name for bucket in self.browser.visible_buckets()])

    def test_stale_bucket_list_is_ignored(self):
        self.browser.load_buckets()
        self.browser.load_buckets()

        self.backend.bucket_requests[1]["on_success"]([Bucket(name="new")])
        self.backend.bucket_requests[0]["on_success"]([Bucket(name="old")])

        self.assertEqual(["new"], [bucket.name for bucket in self.browser.buckets])

    def test_open_bucket_fetches_root(self):
        self.browser.open_bucket("bucket")

        self.assertTrue(self.browser.loading)
        self.assertEqual(1, len(self.backend.list_requests))
        self.assertEqual("bucket", self.backend.list_requests[0]["bucket_name"])
        self.assertEqual("", self.backend.list_requests[0]["prefix"])
        self.assertEqual("/", self.backend.list_requests[0]["delimiter"])

        self.resolve_listing(files=[ObjectEntry(key="root.txt")])

        self.assertFalse(self.browser.loading)
        self.assertEqual(BrowserLevel.FILES, self.browser.level)
        self.assertEqual(Location("bucket", ""), self.browser.location)
        self.assertEqual(["bucket"], self.backend.last_buckets)

    def test_open_folder_requires_bucket(self):
        with self.assertRaises(BrowserStateError):
            self.browser.open_folder("docs/")

    def test_open_folder_clears_search_and_fetches_once(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()
        self.browser.set_search("abc")

        self.browser.open_folder(VirtualFolder(prefix="docs/", name="docs"))

        self.assertEqual("", self.browser.search)
        self.assertEqual(2, len(self.backend.list_requests))
        self.assertEqual("docs/", self.backend.list_requests[1]["prefix"])

    def test_location_changes_only_when_fetch_succeeds(self):
        self.open_docs()
        self.browser.open_folder("docs/sub/")

        self.backend.list_requests[-1]["on_error"](StoreUnavailableError("offline"))

        self.assertEqual(Location("bucket", "docs/"), self.browser.location)
        self.assertEqual((A, B, C), self.browser.files)
        self.assertEqual(NoticeLevel.ERROR, self.notices[-1].level)
        self.assertFalse(self.browser.loading)

    def test_go_up_from_root_returns_to_bucket_list(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing(files=[ObjectEntry(key="root.txt")])

        self.browser.go_up()

        self.assertEqual(BrowserLevel.BUCKETS, self.browser.level)
        self.assertIsNone(self.browser.bucket)
        self.assertEqual((), self.browser.files)
        self.assertEqual((), self.browser.folders)
        self.assertEqual(1, len(self.backend.list_requests))

    def test_go_up_strips_last_segment(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()
        self.browser.open_folder("a/b/")
        self.resolve_listing()

        self.browser.go_up()

        self.assertEqual("a/", self.backend.list_requests[-1]["prefix"])
        self.resolve_listing()
        self.assertEqual("a/", self.browser.prefix)

    def test_go_up_from_root_discards_in_flight_listing(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()
        self.browser.open_folder("docs/")

        self.browser.go_up()
        self.resolve_listing(index=1, files=[A])

        self.assertEqual(BrowserLevel.BUCKETS, self.browser.level)
        self.assertEqual((), self.browser.files)

    def test_superseded_fetch_is_discarded(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()

        self.browser.open_folder("x/")
        self.browser.open_folder("y/")
        self.resolve_listing(index=2, files=[ObjectEntry(key="y/1.txt")])
        self.resolve_listing(index=1, files=[ObjectEntry(key="x/1.txt")])

        self.assertEqual(Location("bucket", "y/"), self.browser.location)
        self.assertEqual(["y/1.txt"], [entry.key for entry in self.browser.files])

    def test_superseded_error_is_not_reported(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()
        self.browser.open_folder("x/")
        self.browser.open_folder("y/")

        self.backend.list_requests[1]["on_error"](StoreUnavailableError("late"))

        self.assertEqual([], self.notices)
        self.assertTrue(self.browser.loading)

    def test_refresh_refetches_current_location(self):
        self.open_docs()

        self.browser.refresh()

        self.assertEqual("docs/", self.backend.list_requests[-1]["prefix"])

    def test_refresh_at_bucket_list_reloads_buckets(self):
        self.browser.refresh()

        self.assertEqual(1, len(self.backend.bucket_requests))
        self.assertEqual([], self.backend.list_requests)

    def test_breadcrumbs(self):
        self.browser.open_bucket("bucket")
        self.resolve_listing()
        self.browser.open_folder("a/b/c/")
        self.resolve_listing()

        self.assertEqual(["a", "b", "c"], self.browser.breadcrumbs)
        self.browser.open_breadcrumb(1)
        self.assertEqual("a/b/", self.backend.list_requests[-1]["prefix"])
        with self.assertRaises(IndexError):
            self.browser.open_breadcrumb(3)

    def test_selection_cleared_when_entry_leaves_listing(self):
        self.open_docs()
        self.browser.select_entry(B)

        self.browser.refresh()
        self.resolve_listing(files=[A, C])

        self.assertIsNone(self.browser.selected)


class ConnectionTests(FileBrowserTestCase):
    def test_connect_records_profile_on_success(self):
        self.browser.connect("work")
        self.assertEqual([], self.backend.last_connections)

        self.backend.bucket_requests[0]["on_success"]([Bucket(name="media")])

        self.assertEqual(["work"], self.backend.last_connections)
        self.assertEqual(["media"], [bucket.name for bucket in self.browser.buckets])

    def test_failed_connect_is_not_remembered(self):
        self.browser.connect("work")
        self.backend.bucket_requests[0]["on_error"](StoreUnavailableError("denied"))

        self.assertEqual([], self.backend.last_connections)
        self.assertEqual(NoticeLevel.ERROR, self.notices[-1].level)

    def test_connect_leaves_previous_account_bucket(self):
        self.open_docs()
        self.resolve_listing(files=[A])
        self.browser.copy_entry(A)
        self.browser.set_search("a")

        self.browser.connect("other")

        self.assertEqual(BrowserLevel.BUCKETS, self.browser.level)
        self.assertEqual(Location(), self.browser.location)
        self.assertIsNone(self.browser.listing)
        self.assertIsNone(self.browser.clipboard)
        self.assertEqual("", self.browser.search)

    def test_connect_discards_listing_still_in_flight(self):
        self.browser.open_bucket("bucket")
        self.browser.connect("other")

        self.resolve_listing(index=0, files=[A])

        self.assertEqual(Location(), self.browser.location)
        self.assertIsNone(self.browser.listing)

    def test_resume_without_remembered_profile_does_nothing(self):
        self.assertIsNone(self.browser.resume())
        self.assertEqual([], self.backend.bucket_requests)

    def test_resume_reopens_remembered_bucket(self):
        self.backend.auto_connect_profile = "work"
        self.backend.remembered = "media"

        self.assertEqual("work", self.browser.resume())
        self.assertEqual("work", self.backend.bucket_requests[0]["profile_name"])
        self.backend.bucket_requests[0]["on_success"]([Bucket(name="logs"), Bucket(name="media")])

        self.assertEqual("media", self.backend.list_requests[0]["bucket_name"])
        self.assertEqual("", self.backend.list_requests[0]["prefix"])

    def test_resume_skips_bucket_that_no_longer_exists(self):
        self.backend.auto_connect_profile = "work"
        self.backend.remembered = "gone"

        self.browser.resume()
        self.backend.bucket_requests[0]["on_success"]([Bucket(name="logs")])

        self.assertEqual([], self.backend.list_requests)
        self.assertEqual(BrowserLevel.BUCKETS, self.browser.level)


class ViewTests(FileBrowserTestCase):
    def test_sort_by_toggles_and_persists(self):
        self.open_docs()

        self.browser.sort_by(SortField.NAME)

        self.assertEqual(SortSpec(SortField.NAME, SortDirection.DESC), self.browser.sort)
        self.assertEqual([C, B, A], list(self.browser.view().files))
        self.assertEqual([self.browser.sort], self.backend.saved_sorts)

    def test_view_applies_search(self):
        self.open_docs()

        self.browser.set_search("b.TXT")

        self.assertEqual((B,), self.browser.view().files)


class DeleteTests(FileBrowserTestCase):
    def test_delete_removes_entry_immediately(self):
        self.open_docs()

        self.browser.request_delete(B.key)

        self.assertEqual((A, C), self.browser.files)
        self.assertEqual("docs/B.txt", self.backend.delete_requests[0]["key"])

    def test_failed_delete_restores_exact_listing(self):
        self.open_docs()

        self.browser.request_delete(B.key)
        self.backend.delete_requests[0]["on_error"](StoreUnavailableError("denied"))

        self.assertEqual((A, B, C), self.browser.files)
        self.assertEqual(NoticeLevel.ERROR, self.notices[-1].level)

    def test_successful_delete_clears_selection(self):
        self.open_docs()
        self.browser.select_entry(B)

        self.browser.request_delete(B.key)
        self.backend.delete_requests[0]["on_success"]()

        self.assertIsNone(self.browser.selected)
        self.assertEqual((A, C), self.browser.files)
        self.assertEqual(NoticeLevel.SUCCESS, self.notices[-1].level)

    def test_failed_delete_after_navigation_does_not_revert(self):
        self.open_docs()
        self.browser.request_delete(B.key)
        self.browser.open_folder("other/")
        self.resolve_listing(files=[ObjectEntry(key="other/x.txt")])

        self.backend.delete_requests[0]["on_error"](StoreUnavailableError("denied"))

        self.assertEqual(["other/x.txt"], [entry.key for entry in self.browser.files])

    def test_missing_key_triggers_refresh_instead_of_revert(self):
        self.open_docs()
        requests_before = len(self.backend.list_requests)

        self.browser.request_delete(B.key)
        self.backend.delete_requests[0]["on_error"](ObjectNotFoundError("gone"))

        self.assertEqual((A, C), self.browser.files)
        self.assertEqual(requests_before + 1, len(self.backend.list_requests))
        self.assertEqual(NoticeLevel.WARNING, self.notices[-1].level)


class TransferTests(FileBrowserTestCase):
    def test_paste_into_same_folder_is_no_op(self):
        self.open_docs()
        self.browser.copy_entry(A)

        result = self.browser.paste()

        self.assertEqual(TransferStatus.NO_OP, result.status)
        self.assertEqual([], self.backend.transfer_requests)
        self.assertEqual(NoticeLevel.INFO, self.notices[-1].level)

    def test_paste_requires_clipboard(self):
        self.open_docs()

        with self.assertRaises(BrowserStateError):
            self.browser.paste()

    def test_cut_and_paste_moves_into_current_folder(self):
        self.open_docs()
        self.browser.cut_entry(A)
        self.browser.open_folder("archive/")
        self.resolve_listing()

        self.assertIsNone(self.browser.paste())

        request = self.backend.transfer_requests[0]
        self.assertEqual("docs/A.txt", request["source_key"])
        self.assertEqual("archive/", request["target_prefix"])
        self.assertEqual(TransferMode.MOVE, request["mode"])
        self.assertTrue(self.browser.transfer_pending)

        requests_before = len(self.backend.list_requests)
        request["on_success"](
            TransferResult(TransferStatus.COMPLETED, TransferMode.MOVE, "docs/A.txt", "archive/A.txt")
        )
        request["on_done"]()

        self.assertIsNone(self.browser.clipboard)
        self.assertFalse(self.browser.transfer_pending)
        self.assertEqual(requests_before + 1, len(self.backend.list_requests))
        self.assertEqual("archive/", self.backend.list_requests[-1]["prefix"])

    def test_second_transfer_while_pending_is_rejected(self):
        self.open_docs()
        self.browser.request_transfer(A, "archive/", TransferMode.COPY)

        with self.assertRaises(TransferInProgressError):
            self.browser.request_transfer(B, "archive/", TransferMode.COPY)

    def test_drop_onto_folder_moves(self):
        self.open_docs()

        self.browser.drop(A, VirtualFolder(prefix="docs/sub/", name="sub"))

        request = self.backend.transfer_requests[0]
        self.assertEqual(TransferMode.MOVE, request["mode"])
        self.assertEqual("docs/sub/", request["target_prefix"])

    def test_drop_onto_own_folder_is_no_op(self):
        self.open_docs()

        result = self.browser.drop(A, "docs/")

        self.assertTrue(result.is_no_op)
        self.assertEqual([], self.backend.transfer_requests)

    def test_partial_failure_is_reported_and_listing_refreshed(self):
        self.open_docs()
        self.browser.cut_entry(A)
        self.browser.request_transfer(A, "archive/", TransferMode.MOVE)
        requests_before = len(self.backend.list_requests)

        error = PartialTransferError("docs/A.txt", "archive/A.txt", StoreUnavailableError("denied"))
        self.backend.transfer_requests[0]["on_error"](error)
        self.backend.transfer_requests[0]["on_done"]()

        self.assertIs(error, self.notices[-1].error)
        self.assertEqual(NoticeLevel.ERROR, self.notices[-1].level)
        self.assertIsNotNone(self.browser.clipboard)
        self.assertEqual(requests_before + 1, len(self.backend.list_requests))
        self.resolve_listing(files=[A, B, C])
        self.assertIn(A, self.browser.files)

    def test_failed_copy_keeps_clipboard(self):
        self.open_docs()
        self.browser.copy_entry(A)
        self.browser.request_transfer(A, "archive/", TransferMode.COPY)

        self.backend.transfer_requests[0]["on_error"](StoreUnavailableError("offline"))

        self.assertIsNotNone(self.browser.clipboard)
        self.assertIn("copy", self.notices[-1].message)


class UploadTests(FileBrowserTestCase):
    def test_uploads_each_file_independently(self):
        self.open_docs()

        keys = self.browser.upload_files(["/tmp/one.png", "/tmp/two.txt"])

        self.assertEqual(["docs/one.png", "docs/two.txt"], keys)
        self.assertEqual(2, self.browser.uploads_pending)
        self.assertEqual("image/png", self.backend.upload_requests[0]["content_type"])

        requests_before = len(self.backend.list_requests)
        self.backend.upload_requests[1]["on_success"]()
        self.backend.upload_requests[1]["on_done"]()
        self.backend.upload_requests[0]["on_error"](StoreUnavailableError("offline"))
        self.backend.upload_requests[0]["on_done"]()

        self.assertEqual(0, self.browser.uploads_pending)
        self.assertEqual(requests_before + 1, len(self.backend.list_requests))
        self.assertEqual(
            [NoticeLevel.SUCCESS, NoticeLevel.ERROR],
            [notice.level for notice in self.notices[-2:]],
        )

    def test_upload_target_uses_current_prefix(self):
        self.open_docs()
        received = []

        key = self.browser.request_upload_target("report.pdf", received.append)

        request = self.backend.upload_target_requests[0]
        self.assertEqual("docs/report.pdf", key)
        self.assertEqual("application/pdf", request["content_type"])
        target = UploadTarget(bucket="bucket", key=key, url="https://signed")
        request["on_success"](target)
        self.assertEqual([target], received)

    def test_upload_completed_refreshes(self):
        self.open_docs()
        requests_before = len(self.backend.list_requests)

        self.browser.upload_completed("docs/report.pdf")

        self.assertEqual(requests_before + 1, len(self.backend.list_requests))
        self.assertEqual("Uploaded report.pdf", self.notices[-1].message)

    def test_request_link(self):
        self.open_docs()
        links = []

        self.browser.request_link(A, links.append)
        self.backend.link_requests[0]["on_success"]("https://signed/get")

        self.assertEqual("docs/A.txt", self.backend.link_requests[0]["key"])
        self.assertEqual(["https://signed/get"], links)


if __name__ == "__main__":
    unittest.main()
