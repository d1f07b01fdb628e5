"""Exception hierarchy for certificate loading and verification."""

from typing import Optional


class CertInspectorError(Exception):
    """Base class for all errors raised by cert_inspector."""


class CertificateParseError(CertInspectorError):
    """A DER block could not be decoded as an X.509 certificate."""


class RootsParseError(CertInspectorError):
    """An explicit roots bundle was unreadable or held no certificates."""


class PlatformStoreUnavailable(CertInspectorError):
    """The platform default trust store could not be loaded."""


class LoadError(CertInspectorError):
    """A bundle could not be read from a file, stdin or a TLS endpoint."""


class ChainVerificationFailure(CertInspectorError):
    """
    Path validation failed for a single certificate.

    Never raised out of a verification pass; stored on the record instead.
    ``cause`` keeps the error reported by the path validator.
    """

    def __init__(self, subject: str, reason: str, cause: Optional[Exception] = None):
        self.subject = subject
        self.reason = reason
        self.cause = cause
        super().__init__(reason)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChainVerificationFailure):
            return NotImplemented
        return (self.subject, self.reason) == (other.subject, other.reason)

    def __hash__(self) -> int:
        return hash((self.subject, self.reason))
