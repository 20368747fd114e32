"""
Platform Dispatch for the go-build Install Subsystem

Runs a definition's directives in order against the host platform. The
first install directive whose predicate matches is handed to the install
callback; later install directives are skipped. Log directives always run.
"""

import logging
import re
from typing import Callable, Optional

from packaging.version import InvalidVersion, Version

from gobuild.env_utils import HostPlatform
from gobuild.exceptions import NoMatchingPlatform
from gobuild.log_utils import logger

from .interfaces import (
    Artifact,
    BuildContext,
    Definition,
    InstallDirective,
    InstallResult,
    LogDirective,
    PlatformPredicate,
)

VERSION_BASE_RX = re.compile(r"^v?(\d+(?:\.\d+)*)")


def parse_os_version(value: Optional[str]) -> Optional[Version]:
    """
    Parse the leading numeric part of an OS release ("6.8.0-45-generic" -> 6.8.0).

    Returns:
        Optional[Version]: The parsed version, or None when there is no numeric release.
    """
    if not value:
        return None
    match = VERSION_BASE_RX.match(value.strip())
    if not match:
        return None
    try:
        return Version(match.group(1))
    except InvalidVersion:
        return None


def _within_os_range(predicate: PlatformPredicate, host: HostPlatform) -> bool:
    if predicate.min_os_version is None and predicate.max_os_version is None:
        return True

    current = parse_os_version(host.os_version)
    if current is None:
        return False

    lower = parse_os_version(predicate.min_os_version)
    if lower is not None and current < lower:
        return False

    upper = parse_os_version(predicate.max_os_version)
    if upper is not None:
        # "max: 13" admits every 13.x release
        truncated = current.release[: len(upper.release)]
        if truncated > upper.release:
            return False

    return True


def predicate_matches(predicate: PlatformPredicate, host: HostPlatform) -> bool:
    """
    Evaluate a platform predicate against host facts. Pure.
    """
    if predicate.os is not None and host.os not in predicate.os:
        return False
    if predicate.arch is not None and host.arch not in predicate.arch:
        return False
    return _within_os_range(predicate, host)


class PlatformDispatcher:
    """
    Evaluates install directives against the host and installs the first match.
    """

    def __init__(self, host: HostPlatform):
        self.host = host

    def select(self, definition: Definition) -> Optional[InstallDirective]:
        """
        Return the first install directive matching the host, without side effects.
        """
        for directive in definition.directives:
            if isinstance(directive, InstallDirective) and predicate_matches(
                directive.predicate, self.host
            ):
                return directive
        return None

    def run(
        self,
        definition: Definition,
        context: BuildContext,
        install: Callable[[Artifact], InstallResult],
    ) -> InstallResult:
        """
        Execute a definition's directives in declaration order.

        Parameters:
            definition (Definition): The loaded definition.
            context (BuildContext): The invocation's context; `install_satisfied` is set on the first match.
            install (Callable[[Artifact], InstallResult]): Called once with the matching artifact.

        Returns:
            InstallResult: The result of the single install.

        Raises:
            NoMatchingPlatform: If no install directive matches the host.
        """
        result: Optional[InstallResult] = None

        for directive in definition.directives:
            if isinstance(directive, LogDirective):
                logger.log(
                    logging.getLevelName(directive.level.upper()), directive.message
                )
                continue

            if context.install_satisfied:
                logger.debug(
                    "Skipping %s; an install already matched", directive.artifact.url
                )
                continue

            if predicate_matches(directive.predicate, self.host):
                logger.debug(
                    "Matched %s for %s", directive.artifact.url, self.host.describe()
                )
                context.install_satisfied = True
                result = install(directive.artifact)

        if not context.install_satisfied or result is None:
            raise NoMatchingPlatform(
                f"no installable version found for {self.host.describe()}",
                details=f"definition {definition.identifier}",
            )
        return result
