from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterator, Protocol
from urllib.parse import unquote, urlparse

import requests
import urllib3

logger = logging.getLogger(__name__)


def artifact_relpath(app: str, version: str) -> str:
    return f"{app}/{app}_{version}.tar.gz"


class ArtifactRepo(Protocol):
    """Resolves (app, version) to an archive byte stream."""

    def location(self, app: str, version: str) -> str:
        ...

    def open(self, app: str, version: str) -> ContextManager[BinaryIO]:
        ...


class LocalArtifactRepo:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def location(self, app: str, version: str) -> str:
        return str(self.root / artifact_relpath(app, version))

    @contextlib.contextmanager
    def open(self, app: str, version: str) -> Iterator[BinaryIO]:
        with open(self.location(app, version), "rb") as f:
            yield f


class _ResponseBody:
    """File-like view of a streamed response body.

    Errors raised by urllib3 mid-read are mapped to the requests exceptions
    Response.iter_content() raises for them.
    """

    def __init__(self, raw):
        self._raw = raw

    def read(self, size: int = -1) -> bytes:
        try:
            return self._raw.read(None if size is None or size < 0 else size)
        except urllib3.exceptions.ProtocolError as e:
            raise requests.exceptions.ChunkedEncodingError(e) from e
        except urllib3.exceptions.DecodeError as e:
            raise requests.exceptions.ContentDecodingError(e) from e
        except urllib3.exceptions.ReadTimeoutError as e:
            raise requests.exceptions.ConnectionError(e) from e
        except urllib3.exceptions.HTTPError as e:
            raise requests.exceptions.RequestException(e) from e


class HttpArtifactRepo:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 60.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def location(self, app: str, version: str) -> str:
        return f"{self.base_url}/{artifact_relpath(app, version)}"

    @contextlib.contextmanager
    def open(self, app: str, version: str) -> Iterator[BinaryIO]:
        url = self.location(app, version)
        logger.info("Fetching %s", url)
        r = self.session.get(url, stream=True, timeout=self.timeout_s)
        try:
            r.raise_for_status()
            # The archive itself is gzip; undo only transport-level encoding.
            r.raw.decode_content = True
            yield _ResponseBody(r.raw)
        finally:
            r.close()


def repo_from_url(url: str, *, timeout_s: float = 60.0) -> ArtifactRepo:
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme in {"", "file"}:
        if parsed.netloc not in {"", "localhost"}:
            raise ValueError(f"Remote file urls are not supported: {url}")
        return LocalArtifactRepo(unquote(parsed.path) if scheme else url)
    if scheme in {"http", "https"}:
        return HttpArtifactRepo(url, timeout_s=timeout_s)
    raise ValueError(f"Unsupported artifact repo scheme: {parsed.scheme}")
