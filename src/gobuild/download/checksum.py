"""
Checksum Verification for the go-build Install Subsystem

The digest algorithm is chosen from the length of the expected hex digest.
Backends are probed once when the verifier is created; the first backend
supporting an algorithm is used for it.
"""

import hashlib
import re
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from gobuild.constants import DEFAULT_CHUNK_SIZE
from gobuild.exceptions import UnsupportedChecksumLength
from gobuild.log_utils import logger

from .interfaces import DigestAlgorithm, DigestBackend, Pathish

HEX_RX = re.compile(r"^[0-9a-fA-F]+$")


class HashlibDigest(DigestBackend):
    """Digests computed in-process with hashlib."""

    name = "hashlib"

    def supports(self, algorithm: DigestAlgorithm) -> bool:
        try:
            hashlib.new(algorithm.value)
        except ValueError:
            # FIPS builds of OpenSSL refuse md5
            return False
        return True

    def hexdigest(self, algorithm: DigestAlgorithm, path: Path) -> str:
        digest = hashlib.new(algorithm.value)
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(DEFAULT_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()


# Candidate commands per algorithm, tried in order
DIGEST_COMMANDS: Dict[DigestAlgorithm, Tuple[Tuple[str, ...], ...]] = {
    DigestAlgorithm.MD5: (("openssl", "dgst", "-md5"), ("md5sum",), ("md5", "-q")),
    DigestAlgorithm.SHA1: (
        ("openssl", "dgst", "-sha1"),
        ("sha1sum",),
        ("shasum", "-a", "1"),
    ),
    DigestAlgorithm.SHA256: (
        ("openssl", "dgst", "-sha256"),
        ("sha256sum",),
        ("shasum", "-a", "256"),
    ),
}

HEX_LENGTHS = {
    DigestAlgorithm.MD5: 32,
    DigestAlgorithm.SHA1: 40,
    DigestAlgorithm.SHA256: 64,
}


class CommandDigest(DigestBackend):
    """Digests computed by external tools such as openssl or sha256sum."""

    name = "command"

    def __init__(self) -> None:
        self._commands: Dict[DigestAlgorithm, Tuple[str, ...]] = {}
        for algorithm, candidates in DIGEST_COMMANDS.items():
            for command in candidates:
                if shutil.which(command[0]):
                    self._commands[algorithm] = command
                    break

    def supports(self, algorithm: DigestAlgorithm) -> bool:
        return algorithm in self._commands

    def hexdigest(self, algorithm: DigestAlgorithm, path: Path) -> str:
        command = [*self._commands[algorithm], str(path)]
        result = subprocess.run(command, capture_output=True, text=True, check=True)
        expected_length = HEX_LENGTHS[algorithm]
        for token in result.stdout.replace("=", " ").split():
            if len(token) == expected_length and HEX_RX.match(token):
                return token.lower()
        raise ValueError(f"unrecognized output from {command[0]}: {result.stdout!r}")


def default_backends() -> List[DigestBackend]:
    return [HashlibDigest(), CommandDigest()]


class ChecksumVerifier:
    """
    Computes and compares content digests of downloaded files.

    Verification is opt-in per artifact: an empty expected digest always
    passes. When no backend on the host can compute the selected algorithm the
    check is skipped and treated as a pass.
    """

    def __init__(self, backends: Optional[Sequence[DigestBackend]] = None):
        candidates = list(backends) if backends is not None else default_backends()
        self._selected: Dict[DigestAlgorithm, Optional[DigestBackend]] = {}
        for algorithm in DigestAlgorithm:
            self._selected[algorithm] = next(
                (b for b in candidates if b.supports(algorithm)), None
            )
            logger.debug(
                "Checksum backend for %s: %s",
                algorithm.value,
                getattr(self._selected[algorithm], "name", "unavailable"),
            )

    @property
    def available(self) -> bool:
        """Whether any digest algorithm can be computed on this host."""
        return any(backend is not None for backend in self._selected.values())

    @staticmethod
    def algorithm_for(checksum: str) -> Optional[DigestAlgorithm]:
        """
        Select the digest algorithm for an expected checksum.

        Returns:
            Optional[DigestAlgorithm]: The algorithm, or None for an empty checksum.

        Raises:
            UnsupportedChecksumLength: If the checksum length matches no algorithm.
        """
        if not checksum:
            return None
        algorithm = DigestAlgorithm.for_checksum(checksum)
        if algorithm is None:
            raise UnsupportedChecksumLength(checksum)
        return algorithm

    def can_verify(self, checksum: str) -> bool:
        """
        Report whether `checksum` can actually be checked on this host.
        """
        algorithm = self.algorithm_for(checksum)
        return algorithm is not None and self._selected[algorithm] is not None

    def hexdigest(self, file_path: Pathish, checksum: str) -> Optional[str]:
        """
        Compute the digest of `file_path` with the algorithm implied by `checksum`.

        Returns:
            Optional[str]: The hex digest, or None when it cannot be computed.
        """
        algorithm = self.algorithm_for(checksum)
        if algorithm is None:
            return None
        backend = self._selected[algorithm]
        if backend is None:
            return None
        try:
            return backend.hexdigest(algorithm, Path(file_path))
        except (OSError, ValueError, subprocess.CalledProcessError) as e:
            logger.debug("Error computing %s for %s: %s", algorithm.value, file_path, e)
            return None

    def verify(self, file_path: Pathish, expected: str) -> bool:
        """
        Verify the file against an expected hex digest.

        Parameters:
            file_path (Pathish): File to check.
            expected (str): Expected hex digest; 32, 40 or 64 characters, or empty.

        Returns:
            bool: `True` if the digest matches, the checksum is empty, or no
            backend can compute the algorithm; `False` on mismatch or if the
            file cannot be read.

        Raises:
            UnsupportedChecksumLength: If `expected` has an unsupported length.
        """
        algorithm = self.algorithm_for(expected)
        if algorithm is None:
            return True

        if self._selected[algorithm] is None:
            logger.warning(
                "No %s support available; skipping verification of %s",
                algorithm.value,
                Path(file_path).name,
            )
            return True

        actual = self.hexdigest(file_path, expected)
        if actual is None:
            return False
        if actual.lower() == expected.lower():
            logger.debug("Checksum verified for %s", Path(file_path).name)
            return True

        logger.debug(
            "Checksum mismatch for %s: expected %s, got %s",
            Path(file_path).name,
            expected,
            actual,
        )
        return False
