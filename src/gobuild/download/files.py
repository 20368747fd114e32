"""
File Operations for the go-build Install Subsystem

This module provides the filesystem steps of an install: safe archive
extraction, copying the extracted tree into the prefix, permission
normalization, compatibility links, and running tools with their output
appended to the build log.
"""

import os
import re
import shutil
import stat
import subprocess
import tarfile
import zipfile
from pathlib import Path
from typing import List, Optional, Sequence

from gobuild.constants import INSECURE_DIR_BITS, TARBALL_MODES, ZIP_EXTENSION
from gobuild.exceptions import ExtractionFailed, FetchFailed
from gobuild.log_utils import logger

from .interfaces import ArtifactKind, Pathish

# "go1.21", "gofmt1.21.3", "go-1.22rc1": a tool name followed by its version
VERSIONED_EXECUTABLE_RX = re.compile(
    r"^([A-Za-z][A-Za-z_]*?)-?(\d+(?:\.\d+)*(?:rc\d+)?)$"
)


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    """
    Determine whether the candidate path resides within the given base directory.

    Returns:
        True if the candidate path is inside `real_base_dir`, False otherwise.
    """
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith(("/", "\\")):
        return False
    if "\x00" in member_name:
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    if normalized == ".." or normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    return True


def safe_extract_path(extract_dir: Pathish, file_path: str) -> str:
    """
    Resolve a safe absolute extraction path and prevent directory traversal.

    Parameters:
        extract_dir (Pathish): Base directory intended for extraction.
        file_path (str): Member path from the archive to be extracted.

    Returns:
        str: Absolute, normalized path inside extract_dir suitable for extraction.

    Raises:
        ValueError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    prospective_path = os.path.join(real_extract_dir, file_path)
    normalized_path = os.path.realpath(prospective_path)

    if not _is_within_base(real_extract_dir, normalized_path):
        raise ValueError(
            f"Unsafe extraction path '{file_path}' is outside base '{extract_dir}'"
        )

    return normalized_path


def tarball_mode(filename: str) -> str:
    """
    Pick the tarfile open mode from an archive file name.

    Unknown suffixes fall back to transparent compression detection.
    """
    lowered = filename.lower()
    for suffix, mode in TARBALL_MODES.items():
        if lowered.endswith(suffix):
            return mode
    return "r:*"


def _check_tar_member(member: tarfile.TarInfo, extract_dir: Path) -> None:
    if not is_safe_archive_member(member.name):
        raise ValueError(f"Unsafe archive member '{member.name}'")
    safe_extract_path(extract_dir, member.name)
    if member.issym():
        # Link targets are relative to the member's own directory
        link_base = os.path.dirname(member.name)
        safe_extract_path(extract_dir, os.path.join(link_base, member.linkname))
    elif member.islnk():
        safe_extract_path(extract_dir, member.linkname)


def extract_tarball(archive_path: Path, extract_dir: Path) -> Path:
    """
    Extract a tar archive, rejecting members that would land outside `extract_dir`.

    Raises:
        ExtractionFailed: If the archive is unreadable or contains unsafe members.
    """
    extract_dir.mkdir(parents=True, exist_ok=True)
    mode = tarball_mode(archive_path.name)
    logger.debug("Extracting %s (mode %s) into %s", archive_path, mode, extract_dir)
    try:
        with tarfile.open(archive_path, mode) as tar:
            members = tar.getmembers()
            for member in members:
                _check_tar_member(member, extract_dir)
            tar.extractall(extract_dir, members=members, filter="tar")
    except ValueError as e:
        raise ExtractionFailed(
            f"refusing to extract {archive_path.name}",
            archive_path=str(archive_path),
            details=str(e),
        ) from e
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ExtractionFailed(
            f"failed to extract {archive_path.name}",
            archive_path=str(archive_path),
            details=str(e),
        ) from e
    return extract_dir


def extract_zip(archive_path: Path, extract_dir: Path) -> Path:
    """
    Extract a zip archive member by member, keeping Unix permission bits.

    Raises:
        ExtractionFailed: If the archive is unreadable or contains unsafe members.
    """
    extract_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Extracting %s into %s", archive_path, extract_dir)
    try:
        with zipfile.ZipFile(archive_path, "r") as zip_ref:
            for file_info in zip_ref.infolist():
                file_name = file_info.filename
                if not is_safe_archive_member(file_name):
                    raise ValueError(f"Unsafe archive member '{file_name}'")
                extract_path = safe_extract_path(extract_dir, file_name)

                if file_info.is_dir():
                    os.makedirs(extract_path, exist_ok=True)
                    continue

                os.makedirs(os.path.dirname(extract_path), exist_ok=True)
                with (
                    zip_ref.open(file_info) as source,
                    open(extract_path, "wb") as target,
                ):
                    shutil.copyfileobj(source, target)

                unix_mode = (file_info.external_attr >> 16) & 0o777
                if unix_mode and os.name != "nt":
                    os.chmod(extract_path, unix_mode)
    except ValueError as e:
        raise ExtractionFailed(
            f"refusing to extract {archive_path.name}",
            archive_path=str(archive_path),
            details=str(e),
        ) from e
    except (zipfile.BadZipFile, OSError) as e:
        raise ExtractionFailed(
            f"failed to extract {archive_path.name}",
            archive_path=str(archive_path),
            details=str(e),
        ) from e
    return extract_dir


def extract_archive(kind: ArtifactKind, archive_path: Path, extract_dir: Path) -> Path:
    """Dispatch to the extractor for an artifact kind."""
    if kind is ArtifactKind.ZIP or archive_path.name.lower().endswith(ZIP_EXTENSION):
        return extract_zip(archive_path, extract_dir)
    return extract_tarball(archive_path, extract_dir)


def unwrap_single_root(directory: Path) -> Path:
    """
    Return the sole top-level directory of an extracted tree, or the tree itself.

    Release archives usually wrap everything in one directory ("go/"); its
    contents are what belongs in the prefix.
    """
    entries = [e for e in directory.iterdir()]
    if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
        logger.debug("Unwrapping top-level directory %s", entries[0].name)
        return entries[0]
    return directory


def copy_tree(source: Path, prefix: Path, ignore: Optional[Sequence[str]] = None) -> None:
    """
    Copy `source` into `prefix`, overwriting existing files and keeping symlinks.
    """
    prefix.mkdir(parents=True, exist_ok=True)
    shutil.copytree(
        source,
        prefix,
        symlinks=True,
        dirs_exist_ok=True,
        ignore=shutil.ignore_patterns(*ignore) if ignore else None,
    )
    logger.debug("Copied %s into %s", source, prefix)


def normalize_permissions(root: Path) -> None:
    """Strip group and world write bits from `root` and every directory under it."""
    directories = [root]
    for current, dirnames, _filenames in os.walk(root):
        directories.extend(Path(current) / name for name in dirnames)

    for directory in directories:
        if directory.is_symlink():
            continue
        mode = stat.S_IMODE(directory.stat().st_mode)
        if mode & INSECURE_DIR_BITS:
            os.chmod(directory, mode & ~INSECURE_DIR_BITS)


def create_compat_links(bin_dir: Path) -> List[Path]:
    """
    Add unversioned names for versioned executables ("go1.21" -> "go").

    Existing files are never replaced. Links are relative so the prefix can
    be moved.

    Returns:
        List[Path]: The links that were created.
    """
    if not bin_dir.is_dir():
        return []

    created: List[Path] = []
    for entry in sorted(bin_dir.iterdir()):
        match = VERSIONED_EXECUTABLE_RX.match(entry.name)
        if not match or not entry.is_file():
            continue
        alias = bin_dir / match.group(1)
        if os.path.lexists(alias):
            continue
        os.symlink(entry.name, alias)
        logger.debug("Linked %s -> %s", alias.name, entry.name)
        created.append(alias)
    return created


def run_logged(
    command: Sequence[str], log_file: Path, cwd: Optional[Path] = None
) -> subprocess.CompletedProcess:
    """
    Run a command with stdout and stderr appended to the build log.

    Raises:
        subprocess.CalledProcessError: If the command exits non-zero.
        OSError: If the command cannot be started.
    """
    logger.debug("Running: %s", " ".join(command))
    with open(log_file, "a", encoding="utf-8") as log:
        return subprocess.run(
            list(command),
            cwd=cwd,
            stdout=log,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            check=True,
        )


def git_clone(url: str, destination: Path, ref: Optional[str], log_file: Path) -> Path:
    """
    Shallow-clone a repository, optionally at a branch or tag.

    Raises:
        FetchFailed: If git is missing or the clone fails.
    """
    git = shutil.which("git")
    if git is None:
        raise FetchFailed(
            f"cannot clone {url}", url=url, details="git is not installed"
        )

    command = [git, "clone", "--depth", "1"]
    if ref:
        command.extend(["--branch", ref])
    command.extend([url, str(destination)])

    logger.info("Cloning %s%s...", url, f" ({ref})" if ref else "")
    try:
        run_logged(command, log_file)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise FetchFailed(f"failed to clone {url}", url=url, details=str(exc)) from exc
    return destination
