"""Typed errors raised by devcert operations."""

ISSUES_URL = "https://github.com/davewasmer/devcert/issues"


class DevcertError(Exception):
    """Base class for every error devcert raises on purpose.

    Expected environmental failures (missing tools, declined elevation, bad
    input) are not reportable. Internal inconsistencies are.
    """

    reportable: bool = False


class UnsupportedPlatformError(DevcertError):
    """Host platform has no trust store strategy."""


class MissingDependencyError(DevcertError):
    """Required external tool is absent and cannot be installed."""


class PermissionDeniedError(DevcertError):
    """Privileged operation was declined or failed."""


class CryptoFailureError(DevcertError):
    """Key generation, signing or chain verification failed."""


class DecryptionError(DevcertError):
    """Protected file could not be decrypted."""

    retryable: bool = False


class BadPasswordError(DecryptionError):
    """Authentication tag mismatch, i.e. the password is wrong."""

    retryable = True


class CorruptedDataError(DecryptionError):
    """Protected file is structurally invalid and cannot be decrypted."""


class InvalidDomainError(DevcertError):
    """Domain argument failed hostname validation."""


class BrowserStillRunningError(DevcertError):
    """Browser did not exit before the configured timeout."""


class CommandError(DevcertError):
    """External command exited with a non-zero status."""

    def __init__(self, command: list[str], returncode: int, output: str = "") -> None:
        summary = f"command failed (rc={returncode}): {' '.join(command)}"
        super().__init__(f"{summary}\n{output}" if output else summary)
        self.command = command
        self.returncode = returncode
        self.output = output


class ReportableError(DevcertError):
    """Internal error that indicates a bug in devcert."""

    reportable = True

    def __init__(self, message: str) -> None:
        super().__init__(f"{message} | This is a bug in devcert, please report the issue at {ISSUES_URL}")
