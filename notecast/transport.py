"""HTTP and local-file collaborators for the publish pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import httpx

from .collaborators import UploadedMedia
from .errors import DownloadError, UploadError
from .media import guess_content_type
from .servers import ServerTarget


def _as_path(media_ref: Any) -> Path:
    if isinstance(media_ref, Path):
        return media_ref
    if isinstance(media_ref, str) and media_ref.strip():
        return Path(media_ref.strip())
    raise UploadError(f"unsupported media reference: {media_ref!r}")


def extract_field(payload: Any, dotted: str) -> Any:
    """
    Walk a dotted path ("data.0.url") through nested JSON objects and arrays.

    Returns None when any step is missing.
    """
    current = payload
    for part in [p for p in (dotted or "").split(".") if p]:
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            return None
        if current is None:
            return None
    return current


class LocalFileReader:
    """Reads media references that are local filesystem paths."""

    def read_bytes(self, media_ref: Any) -> bytes:
        path = _as_path(media_ref)
        try:
            return path.read_bytes()
        except OSError as e:
            raise UploadError(f"Failed to read media file: {path}: {e}") from e


class HttpUploadTransport:
    """
    Uploads a local media file to a hosting server as a multipart form.

    The public URL is read from the JSON response at the target's `url_field`.
    Authorization header values are keyed by server name.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 60.0,
        authorization: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        reader: LocalFileReader | None = None,
    ) -> None:
        self._timeout = float(timeout_seconds)
        self._authorization = dict(authorization or {})
        self._client = client
        self._reader = reader or LocalFileReader()

    def upload(
        self, media_ref: Any, target: ServerTarget, *, content_type: str | None = None
    ) -> UploadedMedia:
        if not target.is_external_link or not (target.upload_url or "").strip():
            raise UploadError(f"target {target.key} does not accept uploads")

        path = _as_path(media_ref)
        data = self._reader.read_bytes(path)
        mime = (content_type or "").strip() or guess_content_type(path) or "application/octet-stream"

        headers: dict[str, str] = {}
        auth = self._authorization.get(target.server)
        if auth:
            headers["Authorization"] = auth

        files = {target.file_field: (path.name, data, mime)}

        try:
            if self._client is not None:
                response = self._client.post(target.upload_url, files=files, headers=headers, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(target.upload_url, files=files, headers=headers)
        except httpx.TimeoutException as e:
            raise UploadError(f"Upload to {target.server} timed out") from e
        except httpx.HTTPError as e:
            raise UploadError(f"Upload to {target.server} failed: {e}") from e

        if response.status_code not in (200, 201):
            raise UploadError(f"Upload to {target.server} rejected with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UploadError(f"Upload response from {target.server} is not JSON") from e

        url = extract_field(payload, target.url_field)
        if not isinstance(url, str) or not url.strip():
            raise UploadError(
                f"Upload response from {target.server} has no URL at {target.url_field!r}"
            )

        return UploadedMedia(url=url.strip(), mime_type=mime)


class HttpFetcher:
    """Downloads remote media; any non-200 answer, timeout or network error raises DownloadError."""

    def __init__(self, *, timeout_seconds: float = 30.0, client: httpx.Client | None = None) -> None:
        self._timeout = float(timeout_seconds)
        self._client = client

    def fetch(self, url: str) -> bytes:
        u = (url or "").strip()
        if not u:
            raise DownloadError("url must be a non-empty string")

        try:
            if self._client is not None:
                response = self._client.get(u, timeout=self._timeout, follow_redirects=True)
            else:
                with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
                    response = client.get(u)
        except httpx.TimeoutException as e:
            raise DownloadError(f"Timed out downloading {u}") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Couldn't download {u}: {e}") from e

        if response.status_code != 200:
            raise DownloadError(f"Couldn't download {u}: HTTP {response.status_code}")

        return response.content
