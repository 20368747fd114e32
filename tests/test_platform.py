"""
Tests for platform dispatch.
"""

import logging
from pathlib import Path

import pytest

from gobuild.download.interfaces import (
    Artifact,
    ArtifactKind,
    BuildContext,
    Definition,
    InstallDirective,
    InstallResult,
    LogDirective,
    PlatformPredicate,
)
from gobuild.download.platform import (
    PlatformDispatcher,
    parse_os_version,
    predicate_matches,
)
from gobuild.env_utils import HostPlatform
from gobuild.exceptions import NoMatchingPlatform

pytestmark = pytest.mark.unit


def _artifact(name):
    return Artifact(kind=ArtifactKind.TARBALL, url=f"https://example.com/{name}.tar.gz")


def _context(tmp_path):
    return BuildContext(
        workspace=tmp_path / "work",
        log_file=tmp_path / "build.log",
        prefix=tmp_path / "prefix",
    )


class TestPredicateMatches:
    """Test pure predicate evaluation."""

    def test_empty_predicate_matches_everything(self, linux_host):
        assert predicate_matches(PlatformPredicate(), linux_host)

    def test_os_and_arch_membership(self, linux_host):
        assert predicate_matches(
            PlatformPredicate(os=("linux",), arch=("amd64", "arm64")), linux_host
        )
        assert not predicate_matches(PlatformPredicate(os=("darwin",)), linux_host)
        assert not predicate_matches(
            PlatformPredicate(os=("linux",), arch=("arm64",)), linux_host
        )

    def test_os_version_range(self):
        host = HostPlatform(os="darwin", arch="arm64", os_version="13.6.1")
        assert predicate_matches(PlatformPredicate(min_os_version="11.0"), host)
        assert not predicate_matches(PlatformPredicate(min_os_version="14"), host)
        assert predicate_matches(PlatformPredicate(max_os_version="13"), host)
        assert not predicate_matches(PlatformPredicate(max_os_version="12.7"), host)

    def test_kernel_release_strings(self, linux_host):
        assert parse_os_version("6.1.0-13-amd64").release == (6, 1, 0)
        assert predicate_matches(PlatformPredicate(min_os_version="5.4"), linux_host)

    def test_unknown_os_version_fails_range(self):
        host = HostPlatform(os="linux", arch="amd64", os_version=None)
        assert not predicate_matches(PlatformPredicate(min_os_version="5.4"), host)
        assert parse_os_version("unknown") is None


class TestPlatformDispatcher:
    """Test directive execution order and first-match semantics."""

    def test_first_matching_directive_wins(self, linux_host, tmp_path):
        first = _artifact("a1")
        second = _artifact("a2")
        definition = Definition(
            identifier="1.21.0",
            path=tmp_path / "1.21.0",
            directives=[
                InstallDirective(PlatformPredicate(os=("linux",)), first),
                InstallDirective(PlatformPredicate(), second),
            ],
        )
        installed = []

        def install(artifact):
            installed.append(artifact)
            return InstallResult(success=True, artifact=artifact)

        context = _context(tmp_path)
        result = PlatformDispatcher(linux_host).run(definition, context, install)

        assert installed == [first]
        assert result.artifact is first
        assert context.install_satisfied is True

    def test_skips_non_matching_directives(self, linux_host, tmp_path):
        darwin = _artifact("darwin")
        linux = _artifact("linux")
        definition = Definition(
            identifier="1.21.0",
            path=tmp_path / "1.21.0",
            directives=[
                InstallDirective(PlatformPredicate(os=("darwin",)), darwin),
                InstallDirective(PlatformPredicate(os=("linux",)), linux),
            ],
        )
        dispatcher = PlatformDispatcher(linux_host)

        assert dispatcher.select(definition).artifact is linux
        result = dispatcher.run(
            definition,
            _context(tmp_path),
            lambda artifact: InstallResult(success=True, artifact=artifact),
        )
        assert result.artifact is linux

    def test_log_directives_run_after_install(self, linux_host, tmp_path, caplog):
        definition = Definition(
            identifier="1.21.0",
            path=tmp_path / "1.21.0",
            directives=[
                InstallDirective(PlatformPredicate(), _artifact("a1")),
                LogDirective("Remember to set GOPATH", level="warning"),
            ],
        )
        logger = logging.getLogger("gobuild")
        logger.propagate = True
        try:
            with caplog.at_level(logging.WARNING, logger="gobuild"):
                PlatformDispatcher(linux_host).run(
                    definition,
                    _context(tmp_path),
                    lambda artifact: InstallResult(success=True, artifact=artifact),
                )
        finally:
            logger.propagate = False

        assert "Remember to set GOPATH" in caplog.text

    def test_no_match_raises(self, linux_host, tmp_path):
        definition = Definition(
            identifier="1.21.0",
            path=tmp_path / "1.21.0",
            directives=[
                InstallDirective(PlatformPredicate(os=("windows",)), _artifact("w")),
            ],
        )
        install_calls = []
        with pytest.raises(NoMatchingPlatform) as exc_info:
            PlatformDispatcher(linux_host).run(
                definition, _context(tmp_path), install_calls.append
            )
        assert exc_info.value.message == "no installable version found for linux amd64"
        assert install_calls == []

    def test_install_failure_propagates(self, linux_host, tmp_path):
        definition = Definition(
            identifier="1.21.0",
            path=Path("1.21.0"),
            directives=[InstallDirective(PlatformPredicate(), _artifact("a1"))],
        )

        def install(_artifact):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            PlatformDispatcher(linux_host).run(definition, _context(tmp_path), install)
