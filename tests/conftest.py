import hashlib
import io
import shutil
import tarfile
from pathlib import Path

import platformdirs
import pytest
import requests

from gobuild.constants import (
    BUILD_PATH_ENV_VAR,
    CACHE_PATH_ENV_VAR,
    DEFINITIONS_ENV_VAR,
    LOG_LEVEL_ENV_VAR,
    MIRROR_URL_ENV_VAR,
    SKIP_MIRROR_ENV_VAR,
)
from gobuild.download.interfaces import FetchBackend
from gobuild.env_utils import HostPlatform
from gobuild.exceptions import FetchFailed

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)

GO_VERSION_SCRIPT = '#!/bin/sh\necho "go version go{version} linux/amd64"\n'


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used across the go-build test suite.
    """
    for marker, description in (
        ("unit", "fast tests with no external processes"),
        ("integration", "end-to-end install flows"),
        ("core_downloads", "fetching, caching and verification"),
        ("configuration", "settings and definition loading"),
        ("user_interface", "command line behavior"),
    ):
        config.addinivalue_line("markers", f"{marker}: {description}")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Create an isolated temporary XDG directory layout and point go-build at it.

    Sets XDG_* and TMPDIR to temp paths, patches platformdirs user_* functions
    to return them, and clears every GO_BUILD_* variable so the developer's
    own configuration never leaks into a test.
    """
    base = tmp_path_factory.mktemp("gobuild")
    cache_dir = base / "cache"
    config_dir = base / "config"
    data_dir = base / "data"
    tmp_dir = base / "tmp"

    for path in (cache_dir, config_dir, data_dir, tmp_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    monkeypatch.setenv("TMPDIR", str(tmp_dir))

    for name in (
        BUILD_PATH_ENV_VAR,
        CACHE_PATH_ENV_VAR,
        DEFINITIONS_ENV_VAR,
        LOG_LEVEL_ENV_VAR,
        MIRROR_URL_ENV_VAR,
        SKIP_MIRROR_ENV_VAR,
    ):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )


@pytest.fixture(autouse=True)
def _reset_build_log():
    """Make sure no test leaves a build log handler attached."""
    from gobuild import log_utils

    yield
    log_utils.detach_build_log()


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.put = _block_network
    requests.delete = _block_network
    requests.head = _block_network
    requests.patch = _block_network
    requests.options = _block_network
    requests.Session.request = _block_network


# =============================================================================
# Artifact and Transport Fixtures
# =============================================================================


def sha256_of(path: Path) -> str:
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def _add_file(tar: tarfile.TarFile, name: str, content: str, mode: int) -> None:
    data = content.encode("utf-8")
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


@pytest.fixture
def make_go_tarball(tmp_path):
    """
    Build a release-style tarball: a single "go/" directory holding a
    versioned executable that prints a version line.

    Returns:
        Callable[..., Path]: factory taking the version and an optional file name.
    """
    archives = tmp_path / "archives"
    archives.mkdir(exist_ok=True)

    def _make(version: str = "1.21.0", filename: str = None, versioned: bool = True):
        short = ".".join(version.split(".")[:2])
        name = filename or f"go{version}.linux-amd64.tar.gz"
        archive = archives / name
        exe_name = f"go{short}" if versioned else "go"
        with tarfile.open(archive, "w:gz") as tar:
            _add_file(
                tar,
                f"go/bin/{exe_name}",
                GO_VERSION_SCRIPT.format(version=version),
                0o755,
            )
            _add_file(tar, "go/VERSION", f"go{version}\n", 0o644)
            _add_file(tar, "go/src/runtime/README", "runtime\n", 0o644)
        return archive

    return _make


class FakeBackend(FetchBackend):
    """Transport serving URLs from local files."""

    name = "fake"

    def __init__(self, files=None, heads=None):
        self.files = dict(files or {})
        self.heads = set(heads or ())
        self.get_calls = []
        self.head_calls = []

    @classmethod
    def is_available(cls) -> bool:
        return True

    def head(self, url: str) -> bool:
        self.head_calls.append(url)
        return url in self.heads or url in self.files

    def get(self, url: str, destination: Path) -> int:
        self.get_calls.append(url)
        source = self.files.get(url)
        if source is None:
            raise FetchFailed(f"failed to download {url}", url=url, status_code=404)
        shutil.copyfile(source, destination)
        return destination.stat().st_size


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def linux_host():
    return HostPlatform(os="linux", arch="amd64", os_version="6.1.0-13-amd64")


@pytest.fixture
def definitions_dir(tmp_path):
    directory = tmp_path / "definitions"
    directory.mkdir()
    return directory
