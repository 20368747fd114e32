"""
Custom exceptions for the go-build application.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for users and developers.
Every exception carries the process exit code the command line reports for it.
"""

from gobuild.constants import (
    EXIT_DEFINITION_NOT_FOUND,
    EXIT_FAILURE,
)


class GoBuildError(Exception):
    """
    Base exception for all go-build errors.

    All custom exceptions in go-build should inherit from this class
    to allow for easy catching of all application-specific errors.
    """

    exit_code = EXIT_FAILURE

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Usage and Configuration Errors
# =============================================================================


class UsageError(GoBuildError):
    """Exception raised when the command line arguments are invalid."""

    pass


class ConfigurationError(GoBuildError):
    """
    Exception raised when configuration is invalid or unreadable.

    This includes:
    - Configuration file parsing errors
    - Configuration values of the wrong type
    """

    pass


class EnvironmentUnsuitable(GoBuildError):
    """
    Exception raised when the host cannot run a build.

    Attributes:
        path: The directory that failed the suitability probe.
    """

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path


# =============================================================================
# Definition Errors
# =============================================================================


class DefinitionNotFound(GoBuildError):
    """
    Exception raised when no definition file matches the requested version.

    Attributes:
        identifier: The definition identifier that was searched for.
    """

    exit_code = EXIT_DEFINITION_NOT_FOUND

    def __init__(
        self, message: str, identifier: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.identifier = identifier


class DefinitionError(GoBuildError):
    """
    Exception raised when a definition file cannot be parsed.

    Attributes:
        path: Path to the offending definition file.
    """

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path


class NoMatchingPlatform(GoBuildError):
    """Exception raised when no install directive matches the host platform."""

    pass


# =============================================================================
# Fetch and Verification Errors
# =============================================================================


class FetchFailed(GoBuildError):
    """
    Exception raised for network or source-control fetch failures.

    Attributes:
        url: The URL that was being fetched when the error occurred.
        status_code: The HTTP status code, when the server answered.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        """
        Initialize the fetch exception.

        Args:
            message: The primary error message.
            url: The URL that was being fetched.
            status_code: The HTTP status code, if any.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class ChecksumMismatch(GoBuildError):
    """
    Exception raised when a downloaded artifact does not match its checksum.

    Attributes:
        path: The file that failed verification.
        expected: The expected hex digest.
        actual: The computed hex digest.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        super().__init__(message, f"expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class UnsupportedChecksumLength(GoBuildError):
    """Exception raised when an expected digest has no matching algorithm."""

    def __init__(self, checksum: str) -> None:
        super().__init__(
            f"unsupported checksum length {len(checksum)}",
            details=f"checksum {checksum!r} is not an MD5, SHA1 or SHA256 digest",
        )
        self.checksum = checksum


# =============================================================================
# Install Errors
# =============================================================================


class ExtractionFailed(GoBuildError):
    """
    Exception raised when archive extraction fails.

    Attributes:
        archive_path: Path to the problematic archive.
    """

    def __init__(
        self,
        message: str,
        archive_path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class InvalidExecutable(GoBuildError):
    """
    Exception raised when the installed executable is missing or broken.

    This indicates a defect in the definition or the tooling rather than
    in the user's input.

    Attributes:
        path: Path of the executable that failed the check.
    """

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path
