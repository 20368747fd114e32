"""
HTTP Fetching for the go-build Install Subsystem

HttpFetcher downloads artifacts through a pluggable transport: a streaming
`requests` session, or a plain `urllib.request` fallback. Either can be
restricted to IPv4 or IPv6 address resolution. When a mirror is configured,
checksum-addressed mirror URLs are tried before the upstream URL.
"""

import os
import socket
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional, Sequence, Type

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from gobuild.constants import DEFAULT_CHUNK_SIZE, PROGRESS_MIN_BYTES
from gobuild.exceptions import FetchFailed
from gobuild.log_utils import logger
from gobuild.utils import format_size, get_user_agent

from .checksum import ChecksumVerifier
from .connection import AddressFamilyAdapter, build_opener
from .interfaces import Artifact, FetchBackend

ADDRESS_FAMILIES = {
    None: socket.AF_UNSPEC,
    4: socket.AF_INET,
    6: socket.AF_INET6,
}


def _temp_path_for(destination: Path) -> Path:
    return destination.with_name(
        f"{destination.name}.tmp.{os.getpid()}.{int(time.time() * 1000)}"
    )


class _ProgressReporter:
    """Rich progress bar for one download, or a no-op when disabled."""

    def __init__(self, enabled: bool, label: str, total: Optional[int]):
        self.enabled = enabled and (total is None or total >= PROGRESS_MIN_BYTES)
        self._progress: Optional[Progress] = None
        self._task = None
        self.label = label
        self.total = total

    def __enter__(self) -> "_ProgressReporter":
        if self.enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                transient=True,
            )
            self._progress.start()
            self._task = self._progress.add_task(self.label, total=self.total)
        return self

    def advance(self, num_bytes: int) -> None:
        if self._progress is not None:
            self._progress.update(self._task, advance=num_bytes)

    def __exit__(self, *_exc) -> None:
        if self._progress is not None:
            self._progress.stop()


class RequestsBackend(FetchBackend):
    """Streaming transport built on a requests session."""

    name = "requests"

    def __init__(self, ip_version: Optional[int] = None, show_progress: bool = True):
        self.family = ADDRESS_FAMILIES[ip_version]
        self.show_progress = show_progress
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": get_user_agent()})
        if self.family != socket.AF_UNSPEC:
            adapter = AddressFamilyAdapter(self.family)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    @classmethod
    def is_available(cls) -> bool:
        # requests ships its own CA bundle; without it TLS cannot be verified
        try:
            return os.path.exists(requests.certs.where())
        except (AttributeError, OSError):
            return False

    def head(self, url: str) -> bool:
        try:
            response = self.session.head(url, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            logger.debug("HEAD %s failed: %s", url, e)
            return False
        logger.debug("HEAD %s -> %s", url, response.status_code)
        return response.ok

    def get(self, url: str, destination: Path) -> int:
        temp_path = _temp_path_for(destination)
        response = None
        downloaded_bytes = 0
        try:
            response = self.session.get(url, stream=True)
            logger.debug(
                f"Received HTTP response status code: {response.status_code} for URL: {url}"
            )
            response.raise_for_status()
            total = response.headers.get("Content-Length")
            with (
                _ProgressReporter(
                    self.show_progress,
                    destination.name,
                    int(total) if total and total.isdigit() else None,
                ) as progress,
                open(temp_path, "wb") as file,
            ):
                for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                    if chunk:
                        file.write(chunk)
                        downloaded_bytes += len(chunk)
                        progress.advance(len(chunk))
            os.replace(temp_path, destination)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchFailed(
                f"failed to download {url}", url=url, status_code=status, details=str(e)
            ) from e
        except requests.exceptions.RequestException as e:
            raise FetchFailed(
                f"failed to download {url}", url=url, details=str(e)
            ) from e
        except OSError as e:
            raise FetchFailed(
                f"failed to write {destination}", url=url, details=str(e)
            ) from e
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e_rm:
                    logger.warning(f"Error removing temporary file {temp_path}: {e_rm}")
            if response is not None:
                response.close()
        return downloaded_bytes


class UrllibBackend(FetchBackend):
    """Simple transport built on urllib.request."""

    name = "urllib"

    def __init__(self, ip_version: Optional[int] = None, show_progress: bool = True):
        self.family = ADDRESS_FAMILIES[ip_version]
        self.show_progress = show_progress
        self.opener = build_opener(self.family)

    @classmethod
    def is_available(cls) -> bool:
        return True

    def _request(self, url: str, method: str = "GET") -> urllib.request.Request:
        return urllib.request.Request(
            url, method=method, headers={"User-Agent": get_user_agent()}
        )

    def head(self, url: str) -> bool:
        try:
            with self.opener.open(self._request(url, "HEAD")) as response:
                status = response.status
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.debug("HEAD %s failed: %s", url, e)
            return False
        logger.debug("HEAD %s -> %s", url, status)
        return status is None or status < 400

    def get(self, url: str, destination: Path) -> int:
        temp_path = _temp_path_for(destination)
        downloaded_bytes = 0
        try:
            with self.opener.open(self._request(url)) as response:
                total = response.headers.get("Content-Length")
                with (
                    _ProgressReporter(
                        self.show_progress,
                        destination.name,
                        int(total) if total and total.isdigit() else None,
                    ) as progress,
                    open(temp_path, "wb") as file,
                ):
                    for chunk in iter(lambda: response.read(DEFAULT_CHUNK_SIZE), b""):
                        file.write(chunk)
                        downloaded_bytes += len(chunk)
                        progress.advance(len(chunk))
            os.replace(temp_path, destination)
        except urllib.error.HTTPError as e:
            raise FetchFailed(
                f"failed to download {url}", url=url, status_code=e.code, details=str(e)
            ) from e
        except (urllib.error.URLError, ValueError) as e:
            raise FetchFailed(
                f"failed to download {url}", url=url, details=str(e)
            ) from e
        except OSError as e:
            raise FetchFailed(
                f"failed to download {url}", url=url, details=str(e)
            ) from e
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e_rm:
                    logger.warning(f"Error removing temporary file {temp_path}: {e_rm}")
        return downloaded_bytes


DEFAULT_BACKENDS: Sequence[Type[FetchBackend]] = (RequestsBackend, UrllibBackend)


def select_backend(
    ip_version: Optional[int] = None,
    quiet: bool = False,
    candidates: Sequence[Type[FetchBackend]] = DEFAULT_BACKENDS,
) -> FetchBackend:
    """
    Instantiate the first available transport.

    Progress bars are shown only when not quiet and stderr is a terminal.

    Raises:
        FetchFailed: If no transport is available.
    """
    show_progress = not quiet and sys.stderr.isatty()
    for backend_cls in candidates:
        if backend_cls.is_available():
            logger.debug("Using %s transport", backend_cls.name)
            return backend_cls(ip_version=ip_version, show_progress=show_progress)
    raise FetchFailed("no HTTP transport available")


class HttpFetcher:
    """
    Retrieves URLs to local files, preferring a checksum-addressed mirror.

    Mirror URLs are `<mirror_url>/<checksum>`. They are used only for artifacts
    that carry a checksum, and only when the host can verify checksums at all;
    otherwise the mirror is disabled for the whole run.
    """

    def __init__(
        self,
        backend: FetchBackend,
        verifier: ChecksumVerifier,
        mirror_url: Optional[str] = None,
    ):
        self.backend = backend
        self.verifier = verifier
        self.mirror_url = mirror_url.rstrip("/") if mirror_url else None
        if self.mirror_url and not verifier.available:
            logger.debug("No checksum support on this host; mirror disabled")
            self.mirror_url = None

    def head(self, url: str) -> bool:
        return self.backend.head(url)

    def get(self, url: str, destination: Path) -> int:
        return self.backend.get(url, destination)

    def mirror_url_for(self, artifact: Artifact) -> Optional[str]:
        """
        Return the mirror URL for an artifact, or None when the mirror does not apply.
        """
        if not self.mirror_url or not artifact.checksum:
            return None
        if not self.verifier.can_verify(artifact.checksum):
            return None
        return f"{self.mirror_url}/{artifact.checksum}"

    def fetch(self, artifact: Artifact, destination: Path) -> str:
        """
        Download an artifact, trying the mirror before the upstream URL.

        Returns:
            str: The URL the artifact was actually downloaded from.

        Raises:
            FetchFailed: If the download fails.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)

        source = artifact.url
        mirror = self.mirror_url_for(artifact)
        if mirror is not None:
            if self.head(mirror):
                source = mirror
            else:
                logger.debug("Mirror miss for %s; using upstream", artifact.url)

        logger.info("Downloading %s...", artifact.canonical_filename)
        logger.debug("-> %s", source)
        start_time = time.time()
        downloaded_bytes = self.get(source, destination)
        logger.debug(
            "Download elapsed time: %.2fs for %s", time.time() - start_time, source
        )
        logger.info(
            f"Downloaded: {destination.name} ({format_size(downloaded_bytes)})"
        )
        return source

