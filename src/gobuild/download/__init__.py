"""
go-build Install Subsystem

This package resolves a version spec to a definition, picks the artifact for
the host platform, and installs it into a prefix with checksum verification,
caching and mirror support.

Core Components:
- interfaces: Data model and transport/digest backend interfaces
- checksum: Digest verification
- cache: Artifact cache
- http: HTTP transports and mirror-aware fetching
- connection: IPv4/IPv6 restricted connections for the transports
- version: Definition catalog and version ordering
- definitions: Version spec resolution and definition loading
- platform: Platform dispatch
- files: Extraction and filesystem steps
- pipeline: Install pipeline
- orchestrator: Invocation flow and failure reporting
"""

from .cache import ArtifactCache
from .checksum import ChecksumVerifier
from .definitions import DefinitionResolver, load_definition
from .http import HttpFetcher, select_backend
from .interfaces import (
    Artifact,
    ArtifactKind,
    BuildContext,
    Definition,
    DigestAlgorithm,
    InstallDirective,
    InstallResult,
    LogDirective,
    PlatformPredicate,
)
from .orchestrator import BuildOrchestrator, InstallOptions, install
from .pipeline import InstallPipeline
from .platform import PlatformDispatcher, predicate_matches
from .version import VersionCatalog, sort_versions, version_sort_key

__all__ = [
    # Interfaces
    "Artifact",
    "ArtifactKind",
    "BuildContext",
    "Definition",
    "DigestAlgorithm",
    "InstallDirective",
    "InstallResult",
    "LogDirective",
    "PlatformPredicate",
    # Components
    "ArtifactCache",
    "ChecksumVerifier",
    "DefinitionResolver",
    "HttpFetcher",
    "InstallPipeline",
    "PlatformDispatcher",
    "VersionCatalog",
    # Orchestration
    "BuildOrchestrator",
    "InstallOptions",
    "install",
    # Helpers
    "load_definition",
    "predicate_matches",
    "select_backend",
    "sort_versions",
    "version_sort_key",
]
