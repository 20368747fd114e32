"""
Core Interfaces for the go-build Install Subsystem

This module defines the data structures passed between the resolver, the
platform dispatcher and the install pipeline, plus the abstract transport
and digest backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union
from urllib.parse import urlparse

from gobuild.constants import DEFAULT_EXECUTABLE, DEFAULT_VERIFY_ARGS

Pathish = Union[str, Path]


class ArtifactKind(str, Enum):
    """The fetch strategies a definition can name."""

    TARBALL = "tarball"
    ZIP = "zip"
    GIT = "git"


class DigestAlgorithm(str, Enum):
    """Digest algorithms, keyed by the hex length of their digests."""

    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"

    @classmethod
    def for_checksum(cls, checksum: str) -> Optional["DigestAlgorithm"]:
        return _ALGORITHMS_BY_LENGTH.get(len(checksum))


_ALGORITHMS_BY_LENGTH = {
    32: DigestAlgorithm.MD5,
    40: DigestAlgorithm.SHA1,
    64: DigestAlgorithm.SHA256,
}


@dataclass(frozen=True)
class Artifact:
    """One fetchable unit named by an install directive."""

    kind: ArtifactKind
    """How the artifact is fetched and unpacked"""

    url: str
    """Download URL, or repository URL for git artifacts"""

    checksum: str = ""
    """Expected hex digest; empty means verification is skipped"""

    ref: Optional[str] = None
    """Branch or tag to check out (git artifacts only)"""

    filename: Optional[str] = None
    """Canonical file name; defaults to the last URL path segment"""

    @property
    def canonical_filename(self) -> str:
        if self.filename:
            return self.filename
        path = urlparse(self.url).path.rstrip("/")
        name = path.rsplit("/", 1)[-1]
        if self.kind is ArtifactKind.GIT and name.endswith(".git"):
            name = name[: -len(".git")]
        return name or self.kind.value


@dataclass(frozen=True)
class PlatformPredicate:
    """Platform guard for one install directive; `None` fields match anything."""

    os: Optional[Tuple[str, ...]] = None
    arch: Optional[Tuple[str, ...]] = None
    min_os_version: Optional[str] = None
    max_os_version: Optional[str] = None


@dataclass(frozen=True)
class InstallDirective:
    """`install_if(predicate, artifact)`."""

    predicate: PlatformPredicate
    artifact: Artifact


@dataclass(frozen=True)
class LogDirective:
    """A message emitted when the definition runs, independent of installation."""

    message: str
    level: str = "info"


Directive = Union[InstallDirective, LogDirective]


@dataclass
class Definition:
    """A loaded recipe: directives executed in declaration order."""

    identifier: str
    path: Path
    directives: List[Directive] = field(default_factory=list)
    executable: str = DEFAULT_EXECUTABLE
    verify_args: Tuple[str, ...] = DEFAULT_VERIFY_ARGS


@dataclass
class BuildContext:
    """
    State of one install invocation.

    Passed explicitly to every component; nothing relies on the process
    working directory or environment.
    """

    workspace: Path
    """Ephemeral build directory"""

    log_file: Path
    """Build log capturing all tool output"""

    prefix: Path
    """Target installation directory"""

    keep: bool = False
    """Retain the workspace after a successful install"""

    install_satisfied: bool = False
    """Set once a platform predicate has matched"""


@dataclass
class InstallResult:
    """Terminal outcome of an install."""

    success: bool
    """Whether the prefix was populated and the executable verified"""

    prefix: Optional[Path] = None
    """Where the install landed"""

    artifact: Optional[Artifact] = None
    """The artifact that was installed"""

    executable: Optional[Path] = None
    """Path of the verified primary executable"""

    from_cache: bool = False
    """Whether the artifact came from the cache instead of the network"""

    aliases: List[Path] = field(default_factory=list)
    """Compatibility links created in the prefix"""

    error: Optional[Exception] = None
    """The taxonomy error for a failed install"""


class FetchBackend(ABC):
    """
    Transport used by HttpFetcher.

    Implementations raise `FetchFailed` for every network problem.
    """

    name: str = "backend"

    @classmethod
    @abstractmethod
    def is_available(cls) -> bool:
        """
        Report whether this transport can be used on the host.
        """

    @abstractmethod
    def head(self, url: str) -> bool:
        """
        Probe whether `url` exists without transferring the body.

        Returns:
            bool: `True` for a successful response, `False` otherwise.
        """

    @abstractmethod
    def get(self, url: str, destination: Path) -> int:
        """
        Download `url` into `destination`.

        Returns:
            int: Number of bytes written.
        """


class DigestBackend(ABC):
    """Strategy computing file digests for ChecksumVerifier."""

    name: str = "digest"

    @abstractmethod
    def supports(self, algorithm: DigestAlgorithm) -> bool:
        """
        Report whether this backend can compute `algorithm` on the host.
        """

    @abstractmethod
    def hexdigest(self, algorithm: DigestAlgorithm, path: Path) -> str:
        """
        Compute the lowercase hex digest of the file at `path`.
        """
