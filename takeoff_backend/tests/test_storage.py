import io
import unittest

from botocore.response import StreamingBody
from botocore.stub import Stubber

from takeoff_backend.errors import StorageError
from takeoff_backend.storage import (
    InMemoryStorageClient,
    S3StorageClient,
    build_object_key,
)


class ObjectKeyTests(unittest.TestCase):
    def test_key_keeps_sanitized_filename(self):
        key = build_object_key("Level 1 / Lighting plan.pdf")
        self.assertTrue(key.startswith("pdfs/"))
        self.assertTrue(key.endswith("-Level-1-Lighting-plan.pdf"))
        self.assertNotIn(" ", key)

    def test_keys_are_unique(self):
        self.assertNotEqual(build_object_key("a.pdf"), build_object_key("a.pdf"))

    def test_blank_filename_gets_fallback(self):
        self.assertTrue(build_object_key("  ").endswith("drawing.pdf"))


class InMemoryStorageClientTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()

    def test_put_get_delete(self):
        url = self.storage.put(b"%PDF-1.4", "application/pdf", "plan.pdf")
        self.assertTrue(url.startswith("https://example.test/storage/pdfs/"))
        self.assertEqual(self.storage.get_bytes(url), b"%PDF-1.4")

        self.storage.delete(url)
        self.assertEqual(self.storage.stored_objects, {})
        with self.assertRaises(StorageError):
            self.storage.get_bytes(url)

    def test_delete_of_missing_object_is_a_no_op(self):
        self.storage.delete("https://example.test/storage/pdfs/missing.pdf")

    def test_foreign_locator_is_rejected(self):
        with self.assertRaises(StorageError):
            self.storage.delete("https://elsewhere.test/pdfs/x.pdf")


class S3StorageClientTests(unittest.TestCase):
    def make_client(self, **kwargs) -> S3StorageClient:
        params = {
            "bucket": "drawings",
            "region": "eu-west-1",
            "access_key_id": "testing",
            "secret_access_key": "testing",
        }
        params.update(kwargs)
        return S3StorageClient(**params)

    def test_put_then_delete_uses_the_same_key(self):
        storage = self.make_client()
        with Stubber(storage._client) as stubber:
            stubber.add_response("put_object", {"ETag": '"abc"'})
            url = storage.put(b"%PDF-1.4", "application/pdf", "plan.pdf")
            self.assertTrue(
                url.startswith("https://drawings.s3.eu-west-1.amazonaws.com/pdfs/")
            )
            key = storage.key_for_url(url)
            self.assertTrue(key.startswith("pdfs/") and key.endswith("-plan.pdf"))

            stubber.add_response(
                "delete_object", {}, {"Bucket": "drawings", "Key": key}
            )
            storage.delete(url)
            stubber.assert_no_pending_responses()

    def test_path_style_urls_for_custom_endpoint(self):
        storage = self.make_client(endpoint="http://minio.local:9000/")
        url = storage.url_for_key("pdfs/1-abc-plan.pdf")
        self.assertEqual(url, "http://minio.local:9000/drawings/pdfs/1-abc-plan.pdf")
        self.assertEqual(storage.key_for_url(url), "pdfs/1-abc-plan.pdf")

    def test_us_east_1_uses_global_host(self):
        storage = self.make_client(region="us-east-1")
        self.assertEqual(
            storage.url_for_key("pdfs/a.pdf"),
            "https://drawings.s3.amazonaws.com/pdfs/a.pdf",
        )

    def test_client_errors_become_storage_errors(self):
        storage = self.make_client()
        with Stubber(storage._client) as stubber:
            stubber.add_client_error("put_object", service_error_code="AccessDenied")
            with self.assertRaises(StorageError):
                storage.put(b"%PDF-1.4", "application/pdf", "plan.pdf")

            stubber.add_client_error("delete_object", service_error_code="AccessDenied")
            with self.assertRaises(StorageError):
                storage.delete("https://drawings.s3.eu-west-1.amazonaws.com/pdfs/a.pdf")

    def test_get_bytes_reads_body(self):
        storage = self.make_client()
        body = StreamingBody(io.BytesIO(b"%PDF-1.4 data"), len(b"%PDF-1.4 data"))
        with Stubber(storage._client) as stubber:
            stubber.add_response(
                "get_object",
                {"Body": body},
                {"Bucket": "drawings", "Key": "pdfs/a.pdf"},
            )
            data = storage.get_bytes(
                "https://drawings.s3.eu-west-1.amazonaws.com/pdfs/a.pdf"
            )
        self.assertEqual(data, b"%PDF-1.4 data")


if __name__ == "__main__":
    unittest.main()
