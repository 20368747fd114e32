"""
Definition Resolution and Loading for the go-build Install Subsystem

A definition is a YAML descriptor naming, per platform, the artifact that
installs one version. This module turns a user's version spec into a
definition file and parses that file into a `Definition`.
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from gobuild.constants import SUPPORTED_MAJOR_VERSION
from gobuild.exceptions import DefinitionError, DefinitionNotFound, UsageError
from gobuild.log_utils import logger

from .checksum import ChecksumVerifier
from .interfaces import (
    Artifact,
    ArtifactKind,
    Definition,
    Directive,
    InstallDirective,
    LogDirective,
    PlatformPredicate,
)
from .version import VersionCatalog

# "21" or "21rc1": a minor version without the major prefix
MAJORLESS_SPEC_RX = re.compile(r"^\d+(?:rc\d*)?$")
# "1.21rc2": a release candidate of a minor version, with no patch digit
RC_SPEC_RX = re.compile(r"^(\d+\.\d+rc)\d*$")

LOG_LEVELS = frozenset({"debug", "info", "warning", "error"})
MATCH_ANY = frozenset({"*", "any"})


class DefinitionResolver:
    """
    Maps a user-supplied version spec to a definition file.
    """

    def __init__(
        self, catalog: VersionCatalog, major_version: str = SUPPORTED_MAJOR_VERSION
    ):
        self.catalog = catalog
        self.major_version = major_version

    def normalize(self, spec: str) -> str:
        """
        Prepend the supported major version to a bare minor spec ("20" -> "1.20").
        """
        spec = spec.strip()
        if MAJORLESS_SPEC_RX.match(spec):
            return f"{self.major_version}.{spec}"
        return spec

    def resolve(self, spec: str) -> Path:
        """
        Resolve a version spec to a definition file.

        1. A bare minor spec gets the major version prepended. If no definition
           has exactly that name, the newest catalog entry in that minor
           series is used instead ("21" -> "1.21.0").
        2. A spec naming an existing file is used as-is.
        3. A release-candidate spec such as "1.21rc2" resolves to the newest
           catalog entry starting with "1.21rc".
        4. Otherwise the definition directories are searched for an exact
           file name, first directory wins.

        An explicit minor spec such as "1.21" is only looked up literally.

        Raises:
            UsageError: If the spec is empty.
            DefinitionNotFound: If no definition matches.
        """
        if not spec or not spec.strip():
            raise UsageError("a version to install is required")

        identifier = self.normalize(spec)
        if identifier != spec.strip():
            logger.debug("Expanded version %s to %s", spec, identifier)

        as_path = Path(identifier).expanduser()
        if as_path.is_file():
            logger.debug("Using definition file %s", as_path)
            return as_path

        rc_match = RC_SPEC_RX.match(identifier)
        if rc_match:
            prefix = rc_match.group(1)
            latest = self.catalog.latest_matching(prefix)
            if latest is not None:
                if latest != identifier:
                    logger.info("Using latest %s release candidate: %s", prefix, latest)
                found = self.catalog.find(latest)
                if found is not None:
                    return found

        found = self.catalog.find(identifier)
        if found is not None:
            return found

        if identifier != spec.strip():
            latest = self.catalog.latest_matching(identifier)
            if latest is not None:
                logger.info("Using latest %s release: %s", identifier, latest)
                found = self.catalog.find(latest)
                if found is not None:
                    return found

        raise DefinitionNotFound(
            f"definition not found: {identifier}",
            identifier=identifier,
            details="run `go-build --definitions` to list available versions",
        )


def _as_names(value: Any, field: str, path: Path) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        values = [value]
    elif isinstance(value, list) and all(isinstance(v, str) for v in value):
        values = value
    else:
        raise DefinitionError(
            f"'{field}' must be a name or a list of names", path=str(path)
        )
    names = tuple(v.strip().lower() for v in values)
    if any(name in MATCH_ANY for name in names):
        return None
    return names


def _parse_predicate(record: Dict[str, Any], path: Path) -> PlatformPredicate:
    os_version = record.get("os_version") or {}
    if isinstance(os_version, (str, int, float)):
        os_version = {"min": str(os_version)}
    if not isinstance(os_version, dict):
        raise DefinitionError("'os_version' must be a mapping", path=str(path))
    return PlatformPredicate(
        os=_as_names(record.get("os"), "os", path),
        arch=_as_names(record.get("arch"), "arch", path),
        min_os_version=(
            str(os_version["min"]) if os_version.get("min") is not None else None
        ),
        max_os_version=(
            str(os_version["max"]) if os_version.get("max") is not None else None
        ),
    )


def _parse_artifact(record: Dict[str, Any], path: Path) -> Artifact:
    kinds = [kind for kind in ArtifactKind if kind.value in record]
    if len(kinds) != 1:
        raise DefinitionError(
            "install entries need exactly one of tarball, zip or git",
            path=str(path),
        )
    kind = kinds[0]
    url = record[kind.value]
    if not isinstance(url, str) or not url.strip():
        raise DefinitionError(f"'{kind.value}' must be a URL", path=str(path))

    checksum = record.get("checksum") or ""
    if not isinstance(checksum, str):
        raise DefinitionError("'checksum' must be a hex string", path=str(path))
    checksum = checksum.strip()
    ChecksumVerifier.algorithm_for(checksum)

    ref = record.get("ref")
    filename = record.get("filename")
    if filename is not None and Path(str(filename)).name != str(filename):
        raise DefinitionError("'filename' must be a bare file name", path=str(path))

    return Artifact(
        kind=kind,
        url=url.strip(),
        checksum=checksum,
        ref=str(ref) if ref is not None else None,
        filename=str(filename) if filename is not None else None,
    )


def _parse_directive(record: Any, path: Path) -> Directive:
    if not isinstance(record, dict):
        raise DefinitionError("install entries must be mappings", path=str(path))
    if "log" in record:
        level = str(record.get("level", "info")).lower()
        if level not in LOG_LEVELS:
            raise DefinitionError(f"unknown log level '{level}'", path=str(path))
        return LogDirective(message=str(record["log"]), level=level)
    return InstallDirective(
        predicate=_parse_predicate(record, path),
        artifact=_parse_artifact(record, path),
    )


def load_definition(path: Path, identifier: Optional[str] = None) -> Definition:
    """
    Parse a definition file.

    Parameters:
        path (Path): The YAML definition file.
        identifier (Optional[str]): Name to report; defaults to the file name.

    Returns:
        Definition: The parsed definition with directives in declaration order.

    Raises:
        DefinitionError: If the file cannot be read or is malformed.
        UnsupportedChecksumLength: If a checksum is not an MD5, SHA1 or SHA256 digest.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise DefinitionError(
            f"cannot load definition {path}", path=str(path), details=str(exc)
        ) from exc

    if not isinstance(data, dict):
        raise DefinitionError(
            f"definition {path} must be a mapping", path=str(path)
        )

    records = data.get("install")
    if not isinstance(records, list):
        raise DefinitionError(
            f"definition {path} needs an 'install' list", path=str(path)
        )

    directives: List[Directive] = [_parse_directive(r, path) for r in records]

    definition = Definition(
        identifier=identifier or path.name,
        path=path,
        directives=directives,
    )
    if data.get("executable"):
        definition.executable = str(data["executable"])
    verify = data.get("verify")
    if verify is not None:
        if not isinstance(verify, list):
            raise DefinitionError("'verify' must be a list of arguments", path=str(path))
        definition.verify_args = tuple(str(arg) for arg in verify)

    logger.debug(
        "Loaded definition %s with %d directives", definition.identifier, len(directives)
    )
    return definition
