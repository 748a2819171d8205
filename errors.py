"""
Error taxonomy for analysis calls.

Every failure is classified once, where the API call is made (analyzer.py,
copilot.py). Everything above that boundary looks only at `error.kind`,
never at the message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    QUOTA_EXCEEDED = "quota_exceeded"
    PERMISSION_DENIED = "permission_denied"
    PARSE_FAILURE = "parse_failure"
    NETWORK_FAILURE = "network_failure"


class AnalysisError(Exception):
    kind: ErrorKind = ErrorKind.NETWORK_FAILURE

    @property
    def needs_credentials(self) -> bool:
        """True when the user has to re-enter an API key before things can work."""
        return self.kind in (ErrorKind.MISSING_CREDENTIAL, ErrorKind.PERMISSION_DENIED)


class MissingCredential(AnalysisError):
    """No API key configured. Raised before any network attempt."""

    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, message: str = "API key is missing. Set ANTHROPIC_API_KEY or pass --api-key."):
        super().__init__(message)


class QuotaExceeded(AnalysisError):
    kind = ErrorKind.QUOTA_EXCEEDED


class PermissionDenied(AnalysisError):
    kind = ErrorKind.PERMISSION_DENIED


class ParseFailure(AnalysisError):
    """The response did not satisfy the AnalysisResult contract."""

    kind = ErrorKind.PARSE_FAILURE


class NetworkFailure(AnalysisError):
    kind = ErrorKind.NETWORK_FAILURE
