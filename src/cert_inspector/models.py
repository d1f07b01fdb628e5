"""Data models for certificate bundles and verification results."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional

from cryptography import x509

from cert_inspector.exceptions import ChainVerificationFailure


@dataclass
class CertificateRecord:
    """
    One parsed certificate plus the annotations of the last verification pass.

    Identity fields are filled by the parser and never change afterwards.
    ``verified``, ``verify_error`` and ``is_root`` are written only by
    :func:`cert_inspector.chain.verify`.
    """

    serial_number: int
    subject: str  # RFC4514
    issuer: str  # RFC4514
    subject_cn: str
    issuer_cn: str
    raw_subject: bytes  # DER encoded subject Name
    not_before: datetime  # UTC
    not_after: datetime  # UTC
    is_ca: bool
    san_dns_names: List[str]
    san_emails: List[str]
    san_ip_addresses: List[str]
    san_uris: List[str]
    fingerprint_sha256: str
    raw: bytes = field(repr=False)
    certificate: x509.Certificate = field(repr=False, compare=False)

    verified: bool = False
    verify_error: Optional[ChainVerificationFailure] = None
    is_root: bool = False

    @property
    def has_sans(self) -> bool:
        return bool(self.san_dns_names or self.san_emails or self.san_ip_addresses or self.san_uris)


@dataclass
class VerificationOutcome:
    """Result of validating the bundle entry at ``index``."""

    index: int
    verified: bool
    is_root: bool
    error: Optional[ChainVerificationFailure] = None


class Bundle:
    """
    Ordered certificates from one source.

    For TLS peer chains and "fullchain" files index 0 is the leaf and the last
    index is the most root-ward certificate. Unordered CA lists are valid
    bundles too; their order just carries no meaning.
    """

    def __init__(self, records: Optional[List[CertificateRecord]] = None, source: Optional[str] = None):
        self._records: List[CertificateRecord] = list(records or [])
        self.source = source

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CertificateRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> CertificateRecord:
        return self._records[index]

    def __repr__(self) -> str:
        return f"Bundle(source={self.source!r}, certificates={len(self._records)})"

    @property
    def records(self) -> List[CertificateRecord]:
        return list(self._records)
