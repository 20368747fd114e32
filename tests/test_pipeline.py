"""
Tests for the install pipeline.
"""

import hashlib
import os
import shutil
from pathlib import Path

import pytest

from gobuild.download.cache import ArtifactCache
from gobuild.download.checksum import ChecksumVerifier, HashlibDigest
from gobuild.download.http import HttpFetcher
from gobuild.download.interfaces import (
    Artifact,
    ArtifactKind,
    BuildContext,
    Definition,
)
from gobuild.download.pipeline import InstallPipeline
from gobuild.exceptions import ChecksumMismatch, FetchFailed, InvalidExecutable

pytestmark = [
    pytest.mark.unit,
    pytest.mark.core_downloads,
    pytest.mark.skipif(os.name == "nt", reason="installs POSIX shell scripts"),
]

URL = "https://go.dev/dl/go1.21.0.linux-amd64.tar.gz"


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def verifier():
    return ChecksumVerifier([HashlibDigest()])


@pytest.fixture
def pipeline_factory(fake_backend, verifier, tmp_path):
    def _make(cache_root=None):
        fetcher = HttpFetcher(fake_backend, verifier)
        cache = ArtifactCache(cache_root, verifier)
        return InstallPipeline(fetcher, cache, verifier)

    return _make


def _context(tmp_path, name="prefix", keep=False):
    workspace = tmp_path / f"work-{name}"
    log_file = tmp_path / f"{name}.log"
    log_file.touch()
    return BuildContext(
        workspace=workspace, log_file=log_file, prefix=tmp_path / name, keep=keep
    )


def _definition(tmp_path):
    return Definition(identifier="1.21.0", path=tmp_path / "1.21.0")


def _snapshot(root):
    tree = {}
    for path in sorted(root.rglob("*")):
        rel = str(path.relative_to(root))
        if path.is_symlink():
            tree[rel] = ("link", os.readlink(path))
        elif path.is_file():
            tree[rel] = ("file", path.read_bytes(), path.stat().st_mode)
        else:
            tree[rel] = ("dir", None)
    return tree


class TestInstallPipeline:
    """Test InstallPipeline.install end to end with a fake transport."""

    def test_install_tarball(self, pipeline_factory, fake_backend, make_go_tarball, tmp_path):
        archive = make_go_tarball("1.21.0")
        fake_backend.files[URL] = archive
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum=_sha256(archive))
        context = _context(tmp_path)

        result = pipeline_factory().install(artifact, context, _definition(tmp_path))

        prefix = tmp_path / "prefix"
        assert result.success is True
        assert result.from_cache is False
        assert result.executable == prefix / "bin" / "go"
        assert (prefix / "bin" / "go1.21").is_file()
        assert os.readlink(prefix / "bin" / "go") == "go1.21"
        assert (prefix / "VERSION").read_text() == "go1.21.0\n"
        assert "go version go1.21.0" in context.log_file.read_text()
        assert not context.workspace.exists()

    def test_keep_retains_workspace(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path
    ):
        fake_backend.files[URL] = make_go_tarball("1.21.0")
        context = _context(tmp_path, keep=True)

        pipeline_factory().install(
            Artifact(ArtifactKind.TARBALL, URL), context, _definition(tmp_path)
        )

        assert (context.workspace / "go1.21.0.linux-amd64.tar.gz").is_file()

    def test_checksum_mismatch_removes_download(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path
    ):
        fake_backend.files[URL] = make_go_tarball("1.21.0")
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum="0" * 64)
        context = _context(tmp_path)

        with pytest.raises(ChecksumMismatch) as exc_info:
            pipeline_factory(tmp_path / "cache").install(
                artifact, context, _definition(tmp_path)
            )

        assert exc_info.value.expected == "0" * 64
        assert not (context.workspace / artifact.canonical_filename).exists()
        assert not (tmp_path / "cache" / artifact.canonical_filename).exists()
        assert not (tmp_path / "prefix").exists()
        assert context.workspace.exists()

    def test_fetch_failure_leaves_prefix_untouched(
        self, pipeline_factory, tmp_path
    ):
        context = _context(tmp_path)
        with pytest.raises(FetchFailed):
            pipeline_factory().install(
                Artifact(ArtifactKind.TARBALL, URL), context, _definition(tmp_path)
            )
        assert not (tmp_path / "prefix").exists()

    def test_cached_artifact_skips_network(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path
    ):
        archive = make_go_tarball("1.21.0")
        fake_backend.files[URL] = archive
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum=_sha256(archive))
        pipeline = pipeline_factory(tmp_path / "cache")

        first = pipeline.install(artifact, _context(tmp_path, "one"), _definition(tmp_path))
        second = pipeline.install(artifact, _context(tmp_path, "two"), _definition(tmp_path))

        assert first.from_cache is False
        assert second.from_cache is True
        assert fake_backend.get_calls == [URL]

    def test_relative_cache_root(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path, monkeypatch
    ):
        archive = make_go_tarball("1.21.0")
        fake_backend.files[URL] = archive
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum=_sha256(archive))
        monkeypatch.chdir(tmp_path)

        result = pipeline_factory(Path("relcache")).install(
            artifact, _context(tmp_path), _definition(tmp_path)
        )

        assert result.success is True
        assert (tmp_path / "relcache" / artifact.canonical_filename).is_file()
        assert (tmp_path / "prefix" / "bin" / "go1.21").is_file()

    def test_cached_installs_produce_identical_trees(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path
    ):
        archive = make_go_tarball("1.21.0")
        fake_backend.files[URL] = archive
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum=_sha256(archive))
        pipeline = pipeline_factory(tmp_path / "cache")

        pipeline.install(artifact, _context(tmp_path, "one"), _definition(tmp_path))
        pipeline.install(artifact, _context(tmp_path, "two"), _definition(tmp_path))

        assert _snapshot(tmp_path / "one") == _snapshot(tmp_path / "two")

    def test_repeated_install_into_same_prefix_is_identical(
        self, pipeline_factory, fake_backend, make_go_tarball, tmp_path
    ):
        archive = make_go_tarball("1.21.0")
        fake_backend.files[URL] = archive
        artifact = Artifact(ArtifactKind.TARBALL, URL, checksum=_sha256(archive))
        pipeline = pipeline_factory(tmp_path / "cache")
        prefix = tmp_path / "prefix"

        pipeline.install(artifact, _context(tmp_path), _definition(tmp_path))
        first = _snapshot(prefix)

        shutil.rmtree(prefix)
        pipeline.install(artifact, _context(tmp_path), _definition(tmp_path))
        assert _snapshot(prefix) == first

        pipeline.install(artifact, _context(tmp_path), _definition(tmp_path))
        assert _snapshot(prefix) == first
        assert fake_backend.get_calls == [URL]

    def test_missing_executable(self, pipeline_factory, fake_backend, make_go_tarball, tmp_path):
        fake_backend.files[URL] = make_go_tarball("1.21.0")
        definition = _definition(tmp_path)
        definition.executable = "gopls"

        with pytest.raises(InvalidExecutable, match="gopls was not installed"):
            pipeline_factory().install(
                Artifact(ArtifactKind.TARBALL, URL), _context(tmp_path), definition
            )

    def test_failing_executable(self, pipeline_factory, fake_backend, make_go_tarball, tmp_path):
        fake_backend.files[URL] = make_go_tarball("1.21.0")
        definition = _definition(tmp_path)
        context = _context(tmp_path)

        bin_dir = tmp_path / "prefix" / "bin"
        bin_dir.mkdir(parents=True)
        (bin_dir / "go").write_text("#!/bin/sh\nexit 3\n")
        os.chmod(bin_dir / "go", 0o755)

        with pytest.raises(InvalidExecutable, match="go does not run"):
            pipeline_factory().install(
                Artifact(ArtifactKind.TARBALL, URL), context, definition
            )
        assert context.workspace.exists()

    def test_git_artifact_is_cloned(self, pipeline_factory, tmp_path, mocker):
        def fake_clone(url, destination, ref, log_file):
            (destination / "bin").mkdir(parents=True)
            (destination / ".git").mkdir()
            exe = destination / "bin" / "go"
            exe.write_text('#!/bin/sh\necho "go version devel"\n')
            os.chmod(exe, 0o755)
            return destination

        clone = mocker.patch(
            "gobuild.download.pipeline.git_clone", side_effect=fake_clone
        )
        artifact = Artifact(
            ArtifactKind.GIT, "https://go.googlesource.com/go", ref="master"
        )

        result = pipeline_factory().install(
            artifact, _context(tmp_path), _definition(tmp_path)
        )

        assert result.success
        assert clone.call_args[0][2] == "master"
        assert (tmp_path / "prefix" / "bin" / "go").is_file()
        assert not (tmp_path / "prefix" / ".git").exists()
