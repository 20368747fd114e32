"""
Install Pipeline for the go-build Install Subsystem

Turns one matched artifact into a working installation:

1. acquire the artifact (cache, mirror or upstream; git artifacts are cloned)
2. verify its checksum before anything reads it
3. extract it into the workspace
4. copy the tree into the prefix
5. normalize directory permissions and add compatibility links
6. run the primary executable to prove the install works

Only the workspace and the prefix are written to. The workspace is removed
after a successful install unless it should be kept, and always retained
after a failure.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Tuple

from gobuild.constants import BIN_DIR_NAME, EXTRACT_DIR_NAME, SOURCE_DIR_NAME
from gobuild.exceptions import ChecksumMismatch, GoBuildError, InvalidExecutable
from gobuild.log_utils import logger

from .cache import ArtifactCache
from .checksum import ChecksumVerifier
from .files import (
    copy_tree,
    create_compat_links,
    extract_archive,
    git_clone,
    normalize_permissions,
    run_logged,
    unwrap_single_root,
)
from .http import HttpFetcher
from .interfaces import (
    Artifact,
    ArtifactKind,
    BuildContext,
    Definition,
    InstallResult,
)


class InstallPipeline:
    """
    Executes the install steps for a single artifact.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        cache: ArtifactCache,
        verifier: ChecksumVerifier,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.verifier = verifier

    def acquire(self, artifact: Artifact, context: BuildContext) -> Tuple[Path, bool]:
        """
        Place a verified copy of an archive artifact in the workspace.

        Returns:
            Tuple[Path, bool]: The archive path, and whether it came from the cache.

        Raises:
            FetchFailed: If the download fails.
            ChecksumMismatch: If the download does not match its checksum.
        """
        filename = artifact.canonical_filename
        target = context.workspace / filename

        if self.cache.reuse(filename, artifact.checksum, context.workspace):
            return target, True

        if target.is_symlink() or target.exists():
            target.unlink()

        self.fetcher.fetch(artifact, target)
        self._verify_download(target, artifact.checksum)
        self.cache.store(filename, target)
        return target, False

    def _verify_download(self, path: Path, expected: str) -> None:
        if self.verifier.verify(path, expected):
            return
        actual = self.verifier.hexdigest(path, expected)
        try:
            path.unlink()
        except OSError as e:
            logger.warning("Error removing corrupt download %s: %s", path, e)
        raise ChecksumMismatch(
            f"checksum mismatch for {path.name}",
            path=str(path),
            expected=expected.lower(),
            actual=actual,
        )

    def unpack(self, artifact: Artifact, context: BuildContext) -> Tuple[Path, bool]:
        """
        Acquire an artifact and return the directory whose contents belong in the prefix.
        """
        if artifact.kind is ArtifactKind.GIT:
            destination = context.workspace / SOURCE_DIR_NAME
            if destination.exists():
                shutil.rmtree(destination)
            git_clone(artifact.url, destination, artifact.ref, context.log_file)
            return destination, False

        archive, from_cache = self.acquire(artifact, context)
        extract_dir = context.workspace / EXTRACT_DIR_NAME
        if extract_dir.exists():
            shutil.rmtree(extract_dir)
        logger.info("Extracting %s...", archive.name)
        extract_archive(artifact.kind, archive, extract_dir)
        return unwrap_single_root(extract_dir), from_cache

    def verify_executable(self, definition: Definition, context: BuildContext) -> Path:
        """
        Run the installed primary executable with the definition's verify arguments.

        Raises:
            InvalidExecutable: If the executable is missing or exits non-zero.
        """
        executable = context.prefix / BIN_DIR_NAME / definition.executable
        if not executable.is_file() or not os.access(executable, os.X_OK):
            raise InvalidExecutable(
                f"{definition.executable} was not installed",
                path=str(executable),
                details="the definition's artifact does not provide it",
            )
        try:
            run_logged([str(executable), *definition.verify_args], context.log_file)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise InvalidExecutable(
                f"{definition.executable} does not run",
                path=str(executable),
                details=str(exc),
            ) from exc
        return executable

    def cleanup(self, context: BuildContext) -> None:
        """Remove the workspace unless it should be kept."""
        if context.keep:
            logger.info("Keeping build directory %s", context.workspace)
            return
        shutil.rmtree(context.workspace, ignore_errors=True)
        logger.debug("Removed build directory %s", context.workspace)

    def install(
        self, artifact: Artifact, context: BuildContext, definition: Definition
    ) -> InstallResult:
        """
        Install one artifact into the context's prefix.

        Parameters:
            artifact (Artifact): The artifact selected by platform dispatch.
            context (BuildContext): Workspace, log file and prefix of this invocation.
            definition (Definition): Supplies the executable name and its verify arguments.

        Returns:
            InstallResult: A successful result; failures raise instead.

        Raises:
            GoBuildError: Any step failure. The workspace is left in place.
        """
        context.workspace.mkdir(parents=True, exist_ok=True)
        try:
            source_root, from_cache = self.unpack(artifact, context)

            logger.info("Installing into %s...", context.prefix)
            copy_tree(
                source_root,
                context.prefix,
                ignore=(".git",) if artifact.kind is ArtifactKind.GIT else None,
            )
            normalize_permissions(context.prefix)
            aliases = create_compat_links(context.prefix / BIN_DIR_NAME)
            executable = self.verify_executable(definition, context)
        except OSError as exc:
            raise GoBuildError(
                f"failed to install into {context.prefix}", details=str(exc)
            ) from exc
        except GoBuildError as exc:
            logger.debug(
                "Install failed (%s); build directory %s retained", exc, context.workspace
            )
            raise

        self.cleanup(context)
        logger.info("Installed %s to %s", definition.identifier, context.prefix)
        return InstallResult(
            success=True,
            prefix=context.prefix,
            artifact=artifact,
            executable=executable,
            from_cache=from_cache,
            aliases=aliases,
        )
