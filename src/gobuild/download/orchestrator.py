"""
Install Orchestrator

This module implements the top-level flow of one go-build invocation:
resolve the version spec to a definition, create the build workspace and
log, dispatch on the host platform and run the install pipeline. Failures
are rendered as a report and mapped to the process exit code.
"""

import os
import sys
import tempfile
import time
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from gobuild.config import Settings, load_settings
from gobuild.constants import (
    BUILD_DIR_PREFIX,
    EXIT_SUCCESS,
    LOG_FILE_PREFIX,
    LOG_FILE_SUFFIX,
    MSG_BUILD_FAILED,
    MSG_INSPECT_WORKSPACE,
    MSG_LOG_TAIL,
)
from gobuild.env_utils import HostPlatform, ensure_can_execute
from gobuild.exceptions import EnvironmentUnsuitable, GoBuildError
from gobuild.log_utils import (
    LogTailer,
    attach_build_log,
    console_muted,
    detach_build_log,
    logger,
    set_log_level,
    tail_file,
)
from gobuild.utils import get_package_version

from .cache import ArtifactCache
from .checksum import ChecksumVerifier
from .definitions import DefinitionResolver, load_definition
from .http import HttpFetcher, select_backend
from .interfaces import BuildContext, Definition, FetchBackend, InstallResult
from .pipeline import InstallPipeline
from .platform import PlatformDispatcher
from .version import VersionCatalog


@dataclass
class InstallOptions:
    """Command line switches for one install."""

    keep: bool = False
    """Retain the build workspace after a successful install"""

    verbose: bool = False
    """Echo the build log to the terminal while installing"""

    quiet: bool = False
    """Suppress download progress bars"""

    ip_version: Optional[int] = None
    """Restrict name resolution to IPv4 (4) or IPv6 (6)"""

    debug: bool = False
    """Debug build: keep the workspace and log at DEBUG"""


class BuildOrchestrator:
    """
    Coordinates resolution, platform dispatch and installation for one invocation.
    """

    def __init__(
        self,
        settings: Settings,
        options: Optional[InstallOptions] = None,
        host: Optional[HostPlatform] = None,
        backend: Optional[FetchBackend] = None,
        verifier: Optional[ChecksumVerifier] = None,
    ):
        """
        Parameters:
            settings (Settings): Resolved configuration.
            options (Optional[InstallOptions]): Command line switches.
            host (Optional[HostPlatform]): Host facts; detected when omitted.
            backend (Optional[FetchBackend]): HTTP transport; the first available one is selected when omitted.
            verifier (Optional[ChecksumVerifier]): Checksum verifier; probes the host when omitted.
        """
        self.settings = settings
        self.options = options or InstallOptions()
        self.host = host or HostPlatform.detect()
        self.verifier = verifier or ChecksumVerifier()
        self.catalog = VersionCatalog(settings.definition_dirs)
        self.resolver = DefinitionResolver(self.catalog)
        self._backend = backend

    def list_definitions(self) -> List[str]:
        return self.catalog.list()

    def _build_pipeline(self) -> InstallPipeline:
        backend = self._backend or select_backend(
            ip_version=self.options.ip_version, quiet=self.options.quiet
        )
        fetcher = HttpFetcher(
            backend,
            self.verifier,
            mirror_url=self.settings.mirror_url if self.settings.mirror_enabled else None,
        )
        cache = ArtifactCache(self.settings.cache_path, self.verifier)
        return InstallPipeline(fetcher, cache, self.verifier)

    def _new_context(self, prefix: Path) -> BuildContext:
        stamp = time.strftime("%Y%m%d%H%M%S")
        pid = os.getpid()

        tmp_dir = self.settings.tmp_dir
        build_root = self.settings.build_path or tmp_dir
        log_file = tmp_dir / f"{LOG_FILE_PREFIX}{stamp}.{pid}{LOG_FILE_SUFFIX}"

        directory = tmp_dir
        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            directory = build_root
            build_root.mkdir(parents=True, exist_ok=True)
            workspace = Path(
                tempfile.mkdtemp(
                    prefix=f"{BUILD_DIR_PREFIX}{stamp}.{pid}.", dir=build_root
                )
            )
        except OSError as exc:
            raise EnvironmentUnsuitable(
                f"cannot create a build directory in {directory}",
                path=str(directory),
                details=f"{exc}; set TMPDIR to a writable directory",
            ) from exc

        return BuildContext(
            workspace=workspace,
            log_file=log_file,
            prefix=prefix,
            keep=self.options.keep or self.options.debug,
        )

    def _install(self, context: BuildContext, definition: Definition) -> InstallResult:
        pipeline = self._build_pipeline()
        dispatcher = PlatformDispatcher(self.host)
        logger.info("Installing %s for %s", definition.identifier, self.host.describe())
        return dispatcher.run(
            definition,
            context,
            lambda artifact: pipeline.install(artifact, context, definition),
        )

    def run(self, version_spec: str, prefix: str) -> int:
        """
        Install `version_spec` into `prefix`.

        The prefix is not touched until a definition has been resolved and
        loaded, so an unknown version leaves it exactly as it was.

        Returns:
            int: The process exit code.
        """
        if self.options.debug:
            set_log_level("DEBUG")

        context: Optional[BuildContext] = None
        try:
            definition_path = self.resolver.resolve(version_spec)
            definition = load_definition(definition_path)

            context = self._new_context(Path(prefix).expanduser().absolute())
            ensure_can_execute(str(context.workspace))

            try:
                attach_build_log(context.log_file)
            except OSError as exc:
                raise EnvironmentUnsuitable(
                    f"cannot write the build log {context.log_file}",
                    path=str(context.log_file.parent),
                    details=str(exc),
                ) from exc
            logger.debug(
                "go-build %s: installing %s (%s) into %s on %s %s",
                get_package_version(),
                version_spec,
                definition_path,
                context.prefix,
                self.host.describe(),
                self.host.os_version or "",
            )

            tailer = LogTailer(context.log_file) if self.options.verbose else None
            try:
                with console_muted() if tailer else nullcontext():
                    if tailer:
                        tailer.start()
                    self._install(context, definition)
            finally:
                if tailer:
                    tailer.stop()
                detach_build_log()

        except GoBuildError as exc:
            self._report_failure(exc, context)
            return exc.exit_code

        return EXIT_SUCCESS

    def _report_failure(self, exc: GoBuildError, context: Optional[BuildContext]) -> None:
        if context is None:
            logger.error(str(exc))
            return

        logger.error(
            MSG_BUILD_FAILED.format(
                platform=self.host.describe(), version=get_package_version()
            )
        )
        logger.error(str(exc))
        if context.workspace.exists():
            logger.error(MSG_INSPECT_WORKSPACE.format(path=context.workspace))
        if context.log_file.exists():
            logger.error(MSG_LOG_TAIL.format(path=context.log_file))
            for line in tail_file(context.log_file):
                print(line, file=sys.stderr)


def install(
    version_spec: str,
    prefix: str,
    options: Optional[InstallOptions] = None,
    settings: Optional[Settings] = None,
) -> int:
    """
    Install a version into a prefix and return the process exit code.

    Parameters:
        version_spec (str): Exact, majorless or release-candidate version spec.
        prefix (str): Target installation directory.
        options (Optional[InstallOptions]): Command line switches.
        settings (Optional[Settings]): Configuration; loaded from file and environment when omitted.

    Returns:
        int: 0 on success, 2 if no definition matches, 1 for any other failure.
    """
    try:
        resolved = settings or load_settings()
    except GoBuildError as exc:
        logger.error(str(exc))
        return exc.exit_code
    return BuildOrchestrator(resolved, options).run(version_spec, prefix)
