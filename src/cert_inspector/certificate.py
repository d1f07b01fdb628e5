"""Certificate parsing and bundle assembly."""

import logging
import warnings
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.utils import CryptographyDeprecationWarning
from cryptography.x509.oid import NameOID

from cert_inspector.exceptions import CertificateParseError
from cert_inspector.models import Bundle, CertificateRecord

logger = logging.getLogger(__name__)


def _load_certificate(der: bytes) -> x509.Certificate:
    """
    Load a DER certificate.

    Suppresses the CryptographyDeprecationWarning emitted for non-positive
    serial numbers, which are still common in private PKIs.
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", CryptographyDeprecationWarning)
        cert = x509.load_der_x509_certificate(der)
    for warning in caught:
        logger.debug(f"Certificate parse warning: {warning.message}")
    return cert


def _common_name(name: x509.Name) -> str:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return ""
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        return cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        return False


def _subject_alt_names(cert: x509.Certificate) -> Optional[x509.SubjectAlternativeName]:
    try:
        return cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return None


def parse_certificate(der: bytes) -> CertificateRecord:
    """
    Parse a DER-encoded certificate into an unverified record.

    Args:
        der: Certificate (DER)

    Returns:
        CertificateRecord with all annotation fields at their defaults

    Raises:
        CertificateParseError: If the bytes are not a well-formed X.509 certificate
    """
    try:
        cert = _load_certificate(der)
        san = _subject_alt_names(cert)
        is_ca = _is_ca(cert)
        subject = cert.subject.rfc4514_string()
        issuer = cert.issuer.rfc4514_string()
        raw_subject = cert.subject.public_bytes()
    except ValueError as e:
        raise CertificateParseError(f"parse certificate: {e}") from e

    if san is not None:
        dns_names = san.get_values_for_type(x509.DNSName)
        emails = san.get_values_for_type(x509.RFC822Name)
        ip_addresses = [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]
        uris = san.get_values_for_type(x509.UniformResourceIdentifier)
    else:
        dns_names, emails, ip_addresses, uris = [], [], [], []

    return CertificateRecord(
        serial_number=cert.serial_number,
        subject=subject,
        issuer=issuer,
        subject_cn=_common_name(cert.subject),
        issuer_cn=_common_name(cert.issuer),
        raw_subject=raw_subject,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        is_ca=is_ca,
        san_dns_names=dns_names,
        san_emails=emails,
        san_ip_addresses=ip_addresses,
        san_uris=uris,
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
        raw=bytes(der),
        certificate=cert,
    )


def assemble_bundle(blocks: Iterable[bytes], source: Optional[str] = None) -> Bundle:
    """
    Wrap DER blocks into records, preserving source order.

    Raises:
        CertificateParseError: On the first block that fails to parse.
            No partial bundle is returned.
    """
    records: List[CertificateRecord] = []
    for index, der in enumerate(blocks):
        try:
            records.append(parse_certificate(der))
        except CertificateParseError as e:
            raise CertificateParseError(f"parsing certificate [{index}]: {e}") from e
    logger.debug(f"Assembled bundle of {len(records)} certificate(s) from {source or '<memory>'}")
    return Bundle(records, source=source)
