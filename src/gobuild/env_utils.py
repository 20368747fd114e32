"""
Environment detection helpers.
"""

from __future__ import annotations

import os
import platform
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional

from gobuild.constants import ARCH_ALIASES, OS_ALIASES
from gobuild.exceptions import EnvironmentUnsuitable
from gobuild.log_utils import logger


def normalize_os(name: str) -> str:
    """
    Map a `platform.system()` value onto the OS names used in definitions.
    """
    lowered = name.strip().lower()
    if lowered.startswith(("cygwin", "mingw", "msys")):
        return "windows"
    return OS_ALIASES.get(lowered, lowered)


def normalize_arch(machine: str) -> str:
    """
    Map a `platform.machine()` value onto the architecture names used in definitions.
    """
    lowered = machine.strip().lower()
    return ARCH_ALIASES.get(lowered, lowered)


def _detect_os_version(os_name: str) -> Optional[str]:
    if os_name == "darwin":
        release = platform.mac_ver()[0]
        if release:
            return release
    release = platform.release()
    return release or None


@dataclass(frozen=True)
class HostPlatform:
    """Platform facts predicates are evaluated against."""

    os: str
    arch: str
    os_version: Optional[str] = None

    @classmethod
    def detect(cls) -> "HostPlatform":
        """
        Read the live OS name, architecture and OS release.

        Called once per invocation; the result is passed around rather than cached.
        """
        os_name = normalize_os(platform.system())
        return cls(
            os=os_name,
            arch=normalize_arch(platform.machine()),
            os_version=_detect_os_version(os_name),
        )

    def describe(self) -> str:
        return f"{self.os} {self.arch}"


def ensure_can_execute(directory: str) -> None:
    """
    Check that programs written to `directory` can be executed.

    Writes a tiny shell script into the directory and runs it. Directories on
    `noexec` mounts fail here instead of halfway through an install.

    Raises:
        EnvironmentUnsuitable: If the probe script cannot be written or run.
    """
    if os.name == "nt":
        return

    shell = shutil.which("sh")
    if shell is None:
        logger.debug("No sh on PATH; skipping executable probe for %s", directory)
        return

    try:
        fd, probe = tempfile.mkstemp(dir=directory, prefix="probe-", suffix=".sh")
    except OSError as exc:
        raise EnvironmentUnsuitable(
            f"cannot write to {directory}", path=directory, details=str(exc)
        ) from exc

    try:
        with os.fdopen(fd, "w") as handle:
            handle.write("#!/bin/sh\nexit 0\n")
        os.chmod(probe, 0o700)
        result = subprocess.run(
            [probe], capture_output=True, text=True, check=False
        )
        if result.returncode != 0:
            raise EnvironmentUnsuitable(
                f"cannot execute programs in {directory}",
                path=directory,
                details="set TMPDIR to a directory that allows executables",
            )
    except OSError as exc:
        raise EnvironmentUnsuitable(
            f"cannot execute programs in {directory}",
            path=directory,
            details=f"{exc}; set TMPDIR to a directory that allows executables",
        ) from exc
    finally:
        try:
            os.remove(probe)
        except OSError:
            pass
