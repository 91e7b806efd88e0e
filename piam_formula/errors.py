"""
Error taxonomy for formula installation.

Every failure surfaces to the caller as a distinct FormulaError subclass.
The CLI maps each class to its own exit code.
"""

from __future__ import annotations


class FormulaError(Exception):
    """
    Base exception for formula errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether re-running the whole installation may succeed
        remediation: Suggested fix for the error
    """
    exit_code = 1

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        remediation: str | None = None,
    ):
        self.message = message
        self.retryable = retryable
        self.remediation = remediation
        super().__init__(message)


class UnsupportedPlatform(FormulaError):
    """No artifact is published for the detected (os, arch) pair."""
    exit_code = 2

    def __init__(self, message: str, os_name: str | None = None, arch: str | None = None):
        super().__init__(
            message,
            retryable=False,
            remediation="Wait for a release that supports this platform",
        )
        self.os_name = os_name
        self.arch = arch


class FetchError(FormulaError):
    """Network or transport failure while retrieving the archive."""
    exit_code = 3

    def __init__(self, message: str, url: str | None = None):
        super().__init__(
            message,
            retryable=True,
            remediation="Check network connectivity and re-run the installation",
        )
        self.url = url


class FetchTimeout(FetchError):
    """The archive download did not complete within the configured timeout."""


class IntegrityError(FormulaError):
    """Fetched bytes do not match the pinned SHA-256."""
    exit_code = 4

    def __init__(self, message: str, expected: str, computed: str):
        super().__init__(
            message,
            retryable=False,
            remediation=(
                "Re-run deliberately; if the mismatch recurs the release "
                "artifact may be corrupted or tampered with"
            ),
        )
        self.expected = expected
        self.computed = computed


class ExtractionError(FormulaError):
    """Archive is unreadable or does not contain the expected executable."""
    exit_code = 5


class PlacementError(FormulaError):
    """Filesystem failure writing the executable or the state directory."""
    exit_code = 6

    def __init__(self, message: str, path: str | None = None):
        super().__init__(
            message,
            retryable=False,
            remediation="Check permissions and free space on the target directory",
        )
        self.path = path


class ReleaseConfigError(FormulaError, ValueError):
    """Release table or configuration data is malformed."""
    exit_code = 7


class SmokeTestError(FormulaError):
    """Installed binary did not identify itself as the expected tool."""
    exit_code = 8
