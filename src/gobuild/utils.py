# src/gobuild/utils.py
import importlib.metadata

from gobuild.constants import APP_NAME

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE = None


def get_package_version() -> str:
    """
    Return the installed go-build version, or "unknown" when not installed.
    """
    try:
        return importlib.metadata.version(APP_NAME)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `go-build/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        _USER_AGENT_CACHE = f"{APP_NAME}/{get_package_version()}"

    return _USER_AGENT_CACHE


def format_size(num_bytes: int) -> str:
    """Render a byte count the way download messages show it."""
    size_mb = num_bytes / (1024 * 1024)
    if size_mb >= 1.0:
        return f"{size_mb:.1f} MB"
    return f"{num_bytes} bytes"
