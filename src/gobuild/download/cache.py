"""
Artifact Cache for the go-build Install Subsystem

Downloaded artifacts are kept under a cache root keyed by their canonical
file name. Reused entries are linked into the build workspace instead of
being fetched again.
"""

import os
import shutil
from pathlib import Path
from typing import Optional

from gobuild.log_utils import logger

from .checksum import ChecksumVerifier


def _link_or_copy(source: Path, target: Path) -> None:
    """
    Point `target` at `source` with a symlink, copying when links are unsupported.
    """
    if target.is_symlink() or target.exists():
        target.unlink()
    try:
        os.symlink(source, target)
    except (OSError, NotImplementedError) as e:
        logger.debug("Symlink %s -> %s failed (%s); copying instead", target, source, e)
        shutil.copy2(source, target)


class ArtifactCache:
    """
    Maps canonical artifact file names to copies on persistent storage.

    The cache is append-mostly: entries are added after verified downloads
    and never rewritten in place. A corrupt entry is never fatal; callers
    simply fall through to a network fetch.
    """

    def __init__(self, cache_root: Optional[Path], verifier: ChecksumVerifier):
        """
        Parameters:
            cache_root (Optional[Path]): Directory holding cached artifacts; `None` disables caching.
            verifier (ChecksumVerifier): Verifier used to validate cached copies.
        """
        # Absolute, since workspace symlinks point here
        self.cache_root = (
            Path(cache_root).expanduser().absolute() if cache_root else None
        )
        self.verifier = verifier

    @property
    def enabled(self) -> bool:
        return self.cache_root is not None

    def path_for(self, filename: str) -> Optional[Path]:
        if self.cache_root is None:
            return None
        return self.cache_root / filename

    def reuse(self, filename: str, checksum: str, workspace: Path) -> bool:
        """
        Make a verified copy of `filename` available in the workspace without fetching.

        A copy already in the workspace is reused only when a checksum is known.
        Otherwise a cached copy that passes verification is linked in.

        Returns:
            bool: `True` if `workspace / filename` now holds a verified artifact.
        """
        target = workspace / filename

        if checksum and target.is_file() and self.verifier.verify(target, checksum):
            logger.info("Reusing %s from the build directory", filename)
            return True

        cached = self.path_for(filename)
        if cached is None or not cached.is_file():
            return False

        if not self.verifier.verify(cached, checksum):
            logger.warning(
                "Cached copy of %s failed verification; downloading again", filename
            )
            return False

        try:
            workspace.mkdir(parents=True, exist_ok=True)
            _link_or_copy(cached, target)
        except OSError as e:
            logger.debug("Could not link cached %s into %s: %s", filename, workspace, e)
            return False

        logger.info("Using cached %s", filename)
        return True

    def store(self, filename: str, downloaded: Path) -> Path:
        """
        Move a verified download into the cache and link it back into place.

        When caching is disabled, or the cache cannot be written, the download
        stays where it is.

        Returns:
            Path: The path the artifact can be read from (always `downloaded`).
        """
        cached = self.path_for(filename)
        if cached is None:
            return downloaded

        try:
            cached.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(downloaded), str(cached))
        except OSError as e:
            logger.warning("Could not add %s to the cache: %s", filename, e)
            return downloaded

        try:
            _link_or_copy(cached, downloaded)
        except OSError as e:
            # Keep the workspace usable even when the link fails
            logger.warning("Could not link cached %s back: %s", filename, e)
            shutil.copy2(cached, downloaded)

        logger.debug("Cached %s at %s", filename, cached)
        return downloaded
