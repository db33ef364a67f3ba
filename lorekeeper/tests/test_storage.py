import io
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError

from lorekeeper.storage import (
    MAX_DELETE_BATCH,
    BlobAlreadyExists,
    BlobNotFound,
    BlobStoreError,
    InMemoryBlobStore,
    KeyListing,
    ListPage,
    PartialBatchDelete,
    S3BlobStore,
    chunked,
)


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class InMemoryBlobStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBlobStore(page_size=2)

    def test_put_get_head_delete(self):
        self.store.put("a.json", b"{}", "application/json")
        self.assertTrue(self.store.head("a.json"))
        self.assertEqual(self.store.get("a.json"), b"{}")

        self.store.delete("a.json")
        self.assertFalse(self.store.head("a.json"))
        with self.assertRaises(BlobNotFound):
            self.store.get("a.json")

    def test_conditional_put_refuses_existing_key(self):
        self.store.put("a.json", b"1", "application/json", if_absent=True)
        with self.assertRaises(BlobAlreadyExists):
            self.store.put("a.json", b"2", "application/json", if_absent=True)
        self.assertEqual(self.store.get("a.json"), b"1")

    def test_list_page_returns_continuation_token(self):
        for name in ("d/1.svg", "d/2.svg", "d/3.svg", "other.json"):
            self.store.put(name, b"x", "image/svg+xml")

        first = self.store.list_page("d/")
        self.assertEqual(first.keys, ["d/1.svg", "d/2.svg"])
        self.assertIsNotNone(first.next_token)

        second = self.store.list_page("d/", first.next_token)
        self.assertEqual(second.keys, ["d/3.svg"])
        self.assertIsNone(second.next_token)

    def test_delete_batch_rejects_oversized_batches(self):
        with self.assertRaises(BlobStoreError):
            self.store.delete_batch([f"k{i}" for i in range(MAX_DELETE_BATCH + 1)])


class KeyListingTests(unittest.TestCase):
    def test_follows_tokens_until_exhausted(self):
        store = InMemoryBlobStore(page_size=3)
        for i in range(10):
            store.put(f"deck/{i:02d}.png", b"x", "image/png")

        keys = list(KeyListing(store, "deck/"))
        self.assertEqual(keys, [f"deck/{i:02d}.png" for i in range(10)])

    def test_is_restartable(self):
        store = InMemoryBlobStore(page_size=1)
        store.put("a", b"x", "text/plain")
        store.put("b", b"x", "text/plain")
        listing = KeyListing(store)
        self.assertEqual(list(listing), ["a", "b"])
        self.assertEqual(list(listing), ["a", "b"])

    def test_is_lazy(self):
        store = MagicMock()
        store.list_page.side_effect = [
            ListPage(keys=["a"], next_token="t1"),
            ListPage(keys=["b"], next_token=None),
        ]
        iterator = iter(KeyListing(store, "p/"))
        self.assertEqual(next(iterator), "a")
        self.assertEqual(store.list_page.call_count, 1)
        self.assertEqual(list(iterator), ["b"])
        store.list_page.assert_called_with("p/", "t1")

    def test_repeated_token_raises(self):
        store = MagicMock()
        store.list_page.side_effect = [
            ListPage(keys=["a"], next_token="t1"),
            ListPage(keys=["b"], next_token="t1"),
            ListPage(keys=["c"], next_token=None),
        ]
        with self.assertRaises(BlobStoreError):
            list(KeyListing(store))
        self.assertEqual(store.list_page.call_count, 2)


class ChunkedTests(unittest.TestCase):
    def test_covers_every_key_once(self):
        keys = [str(i) for i in range(2500)]
        batches = chunked(keys)
        self.assertEqual([len(b) for b in batches], [1000, 1000, 500])
        self.assertEqual([k for b in batches for k in b], keys)

    def test_empty_input(self):
        self.assertEqual(chunked([]), [])


class S3BlobStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.store = S3BlobStore(bucket="bucket", region="eu-west-1", client=self.client)

    def test_list_page_maps_truncation(self):
        self.client.list_objects_v2.return_value = {
            "Contents": [{"Key": "a/1.svg"}],
            "IsTruncated": True,
            "NextContinuationToken": "next",
        }
        page = self.store.list_page("a/", "prev")
        self.assertEqual(page.keys, ["a/1.svg"])
        self.assertEqual(page.next_token, "next")
        self.client.list_objects_v2.assert_called_once_with(
            Bucket="bucket", Prefix="a/", ContinuationToken="prev"
        )

    def test_list_page_without_contents(self):
        self.client.list_objects_v2.return_value = {"IsTruncated": False}
        page = self.store.list_page()
        self.assertEqual(page.keys, [])
        self.assertIsNone(page.next_token)

    def test_get_reads_body(self):
        self.client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        self.assertEqual(self.store.get("k"), b"payload")

    def test_get_missing_key(self):
        self.client.get_object.side_effect = _client_error("NoSuchKey")
        with self.assertRaises(BlobNotFound):
            self.store.get("k")

    def test_get_other_errors_are_backend_errors(self):
        self.client.get_object.side_effect = _client_error("AccessDenied")
        with self.assertRaises(BlobStoreError) as ctx:
            self.store.get("k")
        self.assertNotIsInstance(ctx.exception, BlobNotFound)

    def test_connection_errors_are_backend_errors(self):
        self.client.head_object.side_effect = EndpointConnectionError(
            endpoint_url="https://s3"
        )
        with self.assertRaises(BlobStoreError):
            self.store.head("k")

    def test_head(self):
        self.client.head_object.return_value = {}
        self.assertTrue(self.store.head("k"))
        self.client.head_object.side_effect = _client_error("404", "HeadObject")
        self.assertFalse(self.store.head("k"))

    def test_conditional_put(self):
        self.store.put("k", b"x", "application/json", if_absent=True)
        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["IfNoneMatch"], "*")
        self.assertEqual(kwargs["ContentType"], "application/json")

        self.client.put_object.side_effect = _client_error(
            "PreconditionFailed", "PutObject"
        )
        with self.assertRaises(BlobAlreadyExists):
            self.store.put("k", b"x", "application/json", if_absent=True)

    def test_unconditional_put_has_no_precondition(self):
        self.store.put("k", b"x", "image/png")
        self.assertNotIn("IfNoneMatch", self.client.put_object.call_args.kwargs)

    def test_delete_batch(self):
        self.client.delete_objects.return_value = {}
        self.assertEqual(self.store.delete_batch(["a", "b"]), 2)
        kwargs = self.client.delete_objects.call_args.kwargs
        self.assertEqual(
            kwargs["Delete"], {"Objects": [{"Key": "a"}, {"Key": "b"}], "Quiet": True}
        )

    def test_delete_batch_reports_partial_failure(self):
        self.client.delete_objects.return_value = {
            "Errors": [{"Key": "b", "Code": "AccessDenied"}]
        }
        with self.assertRaises(PartialBatchDelete) as ctx:
            self.store.delete_batch(["a", "b", "c"])
        self.assertEqual(ctx.exception.deleted, 2)

    def test_delete_batch_limit(self):
        with self.assertRaises(BlobStoreError):
            self.store.delete_batch(["k"] * (MAX_DELETE_BATCH + 1))
        self.client.delete_objects.assert_not_called()

    def test_public_url(self):
        self.assertEqual(
            self.store.public_url("Elves/elf1.svg"),
            "https://bucket.s3.eu-west-1.amazonaws.com/Elves/elf1.svg",
        )
        custom = S3BlobStore(
            bucket="bucket",
            endpoint_url="https://fly.storage.tigris.dev/",
            client=self.client,
        )
        self.assertEqual(
            custom.public_url("a/b.png"), "https://fly.storage.tigris.dev/bucket/a/b.png"
        )
        cdn = S3BlobStore(
            bucket="bucket", public_base_url="https://cdn.test", client=self.client
        )
        self.assertEqual(cdn.public_url("a/b.png"), "https://cdn.test/a/b.png")

    def test_public_url_falls_back_to_client_region(self):
        self.client.meta.region_name = "us-east-2"
        store = S3BlobStore(bucket="bucket", client=self.client)
        self.assertEqual(
            store.public_url("a/b.png"), "https://bucket.s3.us-east-2.amazonaws.com/a/b.png"
        )


if __name__ == "__main__":
    unittest.main()
