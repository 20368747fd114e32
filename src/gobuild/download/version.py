"""
Version Catalog for the go-build Install Subsystem

This module enumerates available definitions and orders their identifiers
semantically: release candidates before their release, patch letters after
it, and numeric components compared as integers.
"""

import os
import re
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from gobuild.log_utils import logger

TOKEN_RX = re.compile(r"\d+|[A-Za-z]+")
SEPARATOR_RX = re.compile(r"[.\-+]")

# Ordering bands; within a version, tokens of a lower band sort first
PRERELEASE_BAND = 0
END_BAND = 1
TEXT_BAND = 2
NUMBER_BAND = 3

PRERELEASE_RANKS = {
    "dev": 0,
    "alpha": 1,
    "a": 1,
    "beta": 2,
    "b": 2,
    "pre": 3,
    "rc": 4,
}
PATCH_MARKERS = frozenset({"p", "pl", "patch"})

SortToken = Tuple[int, int, str]


def version_sort_key(identifier: str) -> Tuple[Tuple[SortToken, ...], str]:
    """
    Build the sort key for a definition identifier.

    The identifier is split on ".", "-" and "+" and then into digit and letter
    runs. Each run maps to a (band, number, text) token:

    - pre-release markers (rc, beta, ...) sort before the end of the version,
      so "1.21rc1" < "1.21";
    - the end of the version sorts before any further component, so
      "1.21" < "1.21p1" < "1.21.0";
    - patch letters and other text sort before numbers;
    - numbers compare as integers, so "1.9" < "1.10".

    The identifier itself breaks ties between spellings such as "1.2-rc1"
    and "1.2rc1".

    Parameters:
        identifier (str): Definition identifier such as "1.21.3" or "1.22rc2".

    Returns:
        Tuple: A key suitable for `sorted(..., key=version_sort_key)`.
    """
    tokens: List[SortToken] = []
    for segment in SEPARATOR_RX.split(identifier):
        for run in TOKEN_RX.findall(segment):
            if run.isdigit():
                tokens.append((NUMBER_BAND, int(run), ""))
                continue
            lowered = run.lower()
            if lowered in PRERELEASE_RANKS:
                tokens.append((PRERELEASE_BAND, PRERELEASE_RANKS[lowered], lowered))
            elif lowered in PATCH_MARKERS:
                tokens.append((TEXT_BAND, 0, lowered))
            else:
                tokens.append((TEXT_BAND, 1, lowered))
    tokens.append((END_BAND, 0, ""))
    return tuple(tokens), identifier


def sort_versions(identifiers: Sequence[str]) -> List[str]:
    """Return identifiers in ascending semantic order."""
    return sorted(identifiers, key=version_sort_key)


def matches_prefix(identifier: str, prefix: str) -> bool:
    """
    Check whether `identifier` starts with `prefix` on a segment boundary.

    A prefix ending in a digit does not match an identifier that continues
    the same number: "1.2" matches "1.2.3" and "1.2rc1" but not "1.21.0".
    """
    if not identifier.startswith(prefix):
        return False
    rest = identifier[len(prefix) :]
    if not rest or not prefix:
        return True
    return not (prefix[-1].isdigit() and rest[0].isdigit())


class VersionCatalog:
    """
    Enumerates definition identifiers from an ordered list of directories.

    Directories are scanned non-recursively and missing ones are skipped.
    When the same identifier exists in several directories the first
    directory in search order wins.
    """

    def __init__(self, directories: Sequence[Path]):
        self.directories = [Path(d) for d in directories]

    def _iter_entries(self) -> Iterator[Tuple[str, Path]]:
        for directory in self.directories:
            if not directory.is_dir():
                continue
            try:
                with os.scandir(directory) as iterator:
                    entries = sorted(iterator, key=lambda e: e.name)
            except OSError as e:
                logger.debug("Error scanning definitions dir %s: %s", directory, e)
                continue
            for entry in entries:
                if entry.name.startswith("."):
                    continue
                if not entry.is_file():
                    continue
                yield entry.name, Path(entry.path)

    def list(self) -> List[str]:
        """
        Return every available identifier, deduplicated, in semantic order.
        """
        seen = {name for name, _path in self._iter_entries()}
        return sort_versions(list(seen))

    def find(self, identifier: str) -> Optional[Path]:
        """
        Return the definition file for an exact identifier, first directory wins.
        """
        if identifier in {"", ".", ".."} or Path(identifier).name != identifier:
            return None
        for directory in self.directories:
            candidate = directory / identifier
            if candidate.is_file():
                return candidate
        return None

    def latest_matching(self, prefix: str) -> Optional[str]:
        """
        Return the highest identifier starting with `prefix`, or None.
        """
        candidates = [v for v in self.list() if matches_prefix(v, prefix)]
        if not candidates:
            return None
        return candidates[-1]
