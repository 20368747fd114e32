"""
Constants and configuration values for go-build.

This module contains all hardcoded values, environment variable names,
file names, and other constants used throughout the application.
"""

APP_NAME = "go-build"

# The only major version definitions are published for; bare minor specs
# such as "21" or "21rc1" are expanded against it.
SUPPORTED_MAJOR_VERSION = "1"

# Environment variable names
LOG_LEVEL_ENV_VAR = "GO_BUILD_LOG_LEVEL"
DEFINITIONS_ENV_VAR = "GO_BUILD_DEFINITIONS"
CACHE_PATH_ENV_VAR = "GO_BUILD_CACHE_PATH"
MIRROR_URL_ENV_VAR = "GO_BUILD_MIRROR_URL"
SKIP_MIRROR_ENV_VAR = "GO_BUILD_SKIP_MIRROR"
BUILD_PATH_ENV_VAR = "GO_BUILD_BUILD_PATH"
TMPDIR_ENV_VAR = "TMPDIR"

# Configuration file names
CONFIG_FILE_NAME = "config.yaml"
DEFINITIONS_DIR_NAME = "definitions"

# Build workspace and log naming
BUILD_DIR_PREFIX = "go-build."
LOG_FILE_PREFIX = "go-build."
LOG_FILE_SUFFIX = ".log"
LOG_TAIL_LINES = 10
LOG_TAIL_POLL_INTERVAL = 0.2
EXTRACT_DIR_NAME = "extracted"
SOURCE_DIR_NAME = "source"

# Post-install layout
BIN_DIR_NAME = "bin"
DEFAULT_EXECUTABLE = "go"
DEFAULT_VERIFY_ARGS = ("version",)
# Group and world write bits stripped from every installed directory
INSECURE_DIR_BITS = 0o022

# Download settings
DEFAULT_CHUNK_SIZE = 8192
PROGRESS_MIN_BYTES = 1024 * 1024

# Archive suffixes mapped to tarfile open modes
TARBALL_MODES = {
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.bz2": "r:bz2",
    ".tbz2": "r:bz2",
    ".tbz": "r:bz2",
    ".tar.xz": "r:xz",
    ".txz": "r:xz",
    ".tar": "r:",
}
ZIP_EXTENSION = ".zip"

# Logging configuration
LOGGER_NAME = "gobuild"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_DEFINITION_NOT_FOUND = 2

# Host platform name normalization
OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
    "dragonfly": "dragonfly",
    "sunos": "solaris",
    "aix": "aix",
}
ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "armv6l",
    "armv7l": "armv6l",
    "armv8l": "armv6l",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "loongarch64": "loong64",
    "mips64": "mips64",
}

# Failure report messages
MSG_BUILD_FAILED = "BUILD FAILED ({platform} using go-build {version})"
MSG_INSPECT_WORKSPACE = "Inspect or clean up the working tree at {path}"
MSG_LOG_TAIL = "Results logged to {path}"
