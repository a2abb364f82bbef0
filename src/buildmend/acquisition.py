"""Acquisition of remote inputs (logo, Firebase configs) with bounded retries."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx
from httpx_retries import Retry, RetryTransport

from .artifacts import SourceSpec
from .config import NetworkConfig
from .errors import AcquisitionError
from .formats.image import placeholder
from .nfo_config import logged
from .store import ArtifactStore

logger = logging.getLogger("buildmend.acquisition")

USER_AGENT = "buildmend/0.1"
FALLBACKS = ("placeholder",)


@dataclass
class Acquired:
    """Bytes of one source plus where they came from."""

    data: bytes
    origin: str  # network | memo | cache | file | placeholder
    warnings: list[str] = field(default_factory=list)


class _CountingTransport(httpx.BaseTransport):
    """Counts requests that actually reach the wrapped transport."""

    def __init__(self, inner: httpx.BaseTransport):
        self.inner = inner
        self.count = 0

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self.count += 1
        return self.inner.handle_request(request)

    def close(self) -> None:
        self.inner.close()


@logged
class Acquirer:
    """Download inputs once per run, retrying with exponential backoff.

    ``attempts`` is the total number of tries; the delay before try ``n``
    is ``backoff_factor * 2**(n-1)`` capped at ``max_backoff_wait``.
    Successful downloads are kept in memory for the run and written to
    ``cache_dir`` so a later run can fall back on them when offline. A url
    that failed is not tried again within the same run.
    """

    def __init__(
        self,
        network: Optional[NetworkConfig] = None,
        *,
        cache_dir: Optional[Path] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.network = network or NetworkConfig()
        self.network.validate()
        self.cache = ArtifactStore(cache_dir) if cache_dir else None
        self._memo: dict[str, bytes] = {}
        self._failures: dict[str, AcquisitionError] = {}
        self._counter = _CountingTransport(transport or httpx.HTTPTransport())
        retry = Retry(
            total=max(0, self.network.attempts - 1),
            backoff_factor=self.network.backoff_factor,
            max_backoff_wait=self.network.max_backoff_wait,
        )
        self._client = httpx.Client(
            transport=RetryTransport(transport=self._counter, retry=retry),
            timeout=self.network.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def __enter__(self) -> "Acquirer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------

    def acquire(self, spec: SourceSpec) -> Acquired:
        """Resolve a SourceSpec to bytes, applying its fallback when no URL was supplied."""
        if spec.url:
            return self.fetch(spec.url)
        if spec.fallback == "placeholder":
            reason = f"{spec.missing_flag} is not set" if spec.missing_flag else "no source url"
            logger.warning("Using placeholder image: %s", reason)
            return Acquired(placeholder(), "placeholder", [f"placeholder image used ({reason})"])
        flag = spec.missing_flag or "source url"
        raise AcquisitionError(f"${{{flag}}}", "no url supplied")

    def fetch(self, url: str) -> Acquired:
        if url in self._memo:
            return Acquired(self._memo[url], "memo")
        if url in self._failures:
            # one retry sequence per url and run, however many artifacts need it
            raise self._failures[url]

        parsed = urlparse(url)
        if parsed.scheme in ("", "file"):
            path = Path(unquote(parsed.path) if parsed.scheme == "file" else url)
            try:
                data = path.read_bytes()
            except OSError as e:
                raise AcquisitionError(url, f"cannot read local file: {e}") from e
            self._memo[url] = data
            return Acquired(data, "file")
        if parsed.scheme not in ("http", "https"):
            raise AcquisitionError(url, f"unsupported scheme {parsed.scheme!r}")

        try:
            data = self._download(url)
        except AcquisitionError as e:
            cached = self._cached(url)
            if cached is None:
                self._failures[url] = e
                raise
            logger.warning("Download of %s failed (%s); using cached copy", url, e.reason)
            self._memo[url] = cached
            return Acquired(cached, "cache", [f"{url}: download failed, used cached copy from an earlier run"])

        self._memo[url] = data
        if self.cache is not None:
            self.cache.write(self._cache_name(url), data)
        return Acquired(data, "network")

    def _download(self, url: str) -> bytes:
        before = self._counter.count
        logger.info("Downloading %s", url)
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as e:
            raise AcquisitionError(url, f"timed out: {e}", self._counter.count - before) from e
        except httpx.HTTPError as e:
            raise AcquisitionError(url, str(e) or type(e).__name__, self._counter.count - before) from e

        attempts = self._counter.count - before
        if response.status_code >= 400:
            raise AcquisitionError(url, f"HTTP {response.status_code}", attempts)
        if not response.content:
            raise AcquisitionError(url, "empty response body", attempts)
        logger.debug("Downloaded %s (%d bytes, %d attempt(s))", url, len(response.content), attempts)
        return response.content

    def _cache_name(self, url: str) -> str:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        suffix = Path(urlparse(url).path).suffix[:10]
        return f"{digest}{suffix}"

    def _cached(self, url: str) -> Optional[bytes]:
        if self.cache is None:
            return None
        return self.cache.read_optional(self._cache_name(url))
