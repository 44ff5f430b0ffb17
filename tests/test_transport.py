from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import httpx

from notecast.errors import DownloadError, UploadError
from notecast.servers import RecordProtocol, ServerTarget
from notecast.transport import HttpFetcher, HttpUploadTransport, LocalFileReader, extract_field

_TARGET = ServerTarget(
    "nostr_build",
    RecordProtocol.EXTERNAL_LINK,
    upload_url="https://nb.test/upload",
    url_field="data.0.url",
    file_field="file",
)


class TestExtractField(unittest.TestCase):
    def test_walks_objects_and_lists(self) -> None:
        payload = {"data": [{"url": "https://x/y.png"}], "imageUrl": "https://z"}
        self.assertEqual(extract_field(payload, "data.0.url"), "https://x/y.png")
        self.assertEqual(extract_field(payload, "imageUrl"), "https://z")
        self.assertIsNone(extract_field(payload, "data.1.url"))
        self.assertIsNone(extract_field(payload, "data.x.url"))
        self.assertIsNone(extract_field(payload, "imageUrl.deeper"))


class TestLocalFileReader(unittest.TestCase):
    def test_reads_and_reports_missing(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "a.bin"
            p.write_bytes(b"abc")
            reader = LocalFileReader()

            self.assertEqual(reader.read_bytes(p), b"abc")
            self.assertEqual(reader.read_bytes(str(p)), b"abc")
            with self.assertRaises(UploadError):
                reader.read_bytes(Path(td) / "missing.bin")
            with self.assertRaises(UploadError):
                reader.read_bytes(42)


class TestHttpUploadTransport(unittest.TestCase):
    def _media(self, td: str) -> Path:
        p = Path(td) / "pic.png"
        p.write_bytes(b"image bytes")
        return p

    def test_upload_posts_multipart_and_reads_url(self) -> None:
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["type"] = request.headers.get("Content-Type", "")
            seen["body"] = request.read()
            return httpx.Response(200, json={"data": [{"url": " https://cdn.test/pic.png "}]})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        transport = HttpUploadTransport(client=client, authorization={"nostr_build": "Bearer t"})

        with tempfile.TemporaryDirectory() as td:
            uploaded = transport.upload(self._media(td), _TARGET, content_type="image/png")

        self.assertEqual(uploaded.url, "https://cdn.test/pic.png")
        self.assertEqual(uploaded.mime_type, "image/png")
        self.assertEqual(seen["url"], "https://nb.test/upload")
        self.assertEqual(seen["auth"], "Bearer t")
        self.assertTrue(str(seen["type"]).startswith("multipart/form-data"))
        self.assertIn(b"image bytes", seen["body"])  # type: ignore[operator]
        self.assertIn(b'name="file"', seen["body"])  # type: ignore[operator]

    def test_guesses_mime_from_file_name(self) -> None:
        client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(201, json={"data": [{"url": "https://cdn.test/a"}]})
            )
        )
        with tempfile.TemporaryDirectory() as td:
            uploaded = HttpUploadTransport(client=client).upload(self._media(td), _TARGET)
        self.assertEqual(uploaded.mime_type, "image/png")

    def test_rejections_raise_upload_error(self) -> None:
        responses = [
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"data": []}),
        ]
        with tempfile.TemporaryDirectory() as td:
            media = self._media(td)
            for response in responses:
                with self.subTest(status=response.status_code):
                    client = httpx.Client(transport=httpx.MockTransport(lambda request, r=response: r))
                    with self.assertRaises(UploadError):
                        HttpUploadTransport(client=client).upload(media, _TARGET)

    def test_network_error_raises_upload_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(UploadError):
                HttpUploadTransport(client=client).upload(self._media(td), _TARGET)

    def test_content_addressed_target_refused(self) -> None:
        target = ServerTarget("embedded", RecordProtocol.CONTENT_ADDRESSED)
        with self.assertRaises(UploadError):
            HttpUploadTransport().upload("/tmp/whatever.png", target)


class TestHttpFetcher(unittest.TestCase):
    def test_fetch_ok(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"payload")))
        self.assertEqual(HttpFetcher(client=client).fetch("https://cdn.test/a"), b"payload")

    def test_fetch_failures(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        handlers = {
            "not_found": lambda request: httpx.Response(404),
            "timeout": timeout,
        }
        for name, handler in handlers.items():
            with self.subTest(name=name):
                client = httpx.Client(transport=httpx.MockTransport(handler))
                with self.assertRaises(DownloadError):
                    HttpFetcher(client=client).fetch("https://cdn.test/a")

        with self.assertRaises(DownloadError):
            HttpFetcher().fetch("  ")


if __name__ == "__main__":
    unittest.main()
