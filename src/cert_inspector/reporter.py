"""Report generation (text and PEM)."""

import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID
from rich.console import Console

from cert_inspector.models import Bundle, CertificateRecord
from cert_inspector.pem import bundle_to_pem

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 5
DATE_FORMAT = "%Y-%m-%d"

# Global flag for colored output
_use_color = True


def set_color_output(enabled: bool) -> None:
    """Enable or disable colored output."""
    global _use_color
    _use_color = enabled


def format_duration(delta: timedelta) -> str:
    """Format a duration the way people talk about certificate lifetimes."""
    day = 24.0
    week = 7 * day
    month = 30 * day
    year = 365 * day

    hours = delta.total_seconds() / 3600
    if hours >= year:
        return f"{hours / year:.1f} years"
    if hours >= month:
        return f"{hours / month:.1f} months"
    if hours >= week:
        return f"{hours / week:.1f} weeks"
    if hours >= day:
        return f"{hours / day:.1f} days"
    return str(delta)


def _colorize(text: str, style: str) -> str:
    if not _use_color:
        return text
    output = StringIO()
    console = Console(file=output, force_terminal=True, width=1000)
    console.print(f"[{style}]{text}[/{style}]", end="", highlight=False)
    return output.getvalue()


def _format_verified(record: CertificateRecord) -> str:
    if record.verified:
        return _colorize("✔", "green")
    if record.verify_error is None:
        return _colorize("✖", "red")
    return f"{_colorize('✖', 'red')} ({record.verify_error})"


def _attribute_values(name: x509.Name, oid: x509.ObjectIdentifier) -> List[str]:
    return [str(attr.value) for attr in name.get_attributes_for_oid(oid)]


def _format_name(name: x509.Name, verbose: bool) -> str:
    if verbose:
        return name.rfc4514_string()

    parts = _attribute_values(name, NameOID.COMMON_NAME)[:1]
    for oid in (NameOID.ORGANIZATIONAL_UNIT_NAME, NameOID.ORGANIZATION_NAME, NameOID.COUNTRY_NAME):
        parts.extend(_attribute_values(name, oid))
    return ", ".join(parts)


def _format_subject(record: CertificateRecord, verbose: bool) -> str:
    subject = _format_name(record.certificate.subject, verbose)
    if verbose:
        return subject

    sans = []
    if record.san_dns_names:
        sans.append(f"+{len(record.san_dns_names)} DNS SANs")
    if record.san_emails:
        sans.append(f"+{len(record.san_emails)} Email SANs")
    if record.san_ip_addresses:
        sans.append(f"+{len(record.san_ip_addresses)} IP SANs")
    if record.san_uris:
        sans.append(f"+{len(record.san_uris)} URI SANs")

    if not sans:
        return subject
    return f"{subject} ({' '.join(sans)})"


def _format_validity(record: CertificateRecord, now: datetime) -> str:
    lifetime = format_duration(record.not_after - record.not_before)
    expires_in = record.not_after - now
    expiry_date = record.not_after.strftime(DATE_FORMAT)
    if expires_in < timedelta(0):
        return f"{lifetime}, expired on {expiry_date}"
    return f"{lifetime}, expires in {format_duration(expires_in)} ({expiry_date})"


def _build_features(record: CertificateRecord) -> str:
    features = []
    if record.is_root:
        features.append("ROOT")
    if record.is_ca:
        features.append("CA")
    if record.san_dns_names:
        features.append("DNS SANs")
    if record.san_emails:
        features.append("Email SANs")
    if record.san_ip_addresses:
        features.append("IP SANs")
    if record.san_uris:
        features.append("URI SANs")
    return ", ".join(features)


def _format_list(items: List[str], verbose: bool) -> List[str]:
    limit = len(items) if verbose else DEFAULT_LIST_LIMIT
    lines = [f"    - {item}" for item in items[:limit]]
    more = len(items) - limit
    if more > 0:
        lines.append(f"    - (... {more} more)")
    return lines


def _format_certificate(index: int, record: CertificateRecord, now: datetime, verbose: bool) -> List[str]:
    title = record.subject_cn or record.subject or "<no subject>"
    lines = [f"[{index}] {_colorize(title, 'bold')}"]
    lines.append(f"  Subject  : {_format_subject(record, verbose)}")
    lines.append(f"  Issuer   : {_format_name(record.certificate.issuer, verbose)}")
    if verbose:
        lines.append(f"  Serial   : {record.serial_number}")
        lines.append(f"  SHA256   : {record.fingerprint_sha256}")
    lines.append(f"  Valid    : {_format_validity(record, now)}")
    lines.append(f"  Features : {_build_features(record)}")
    lines.append(f"  Verified : {_format_verified(record)}")
    if record.san_dns_names:
        lines.append("  DNS SANs:")
        lines.extend(_format_list(record.san_dns_names, verbose))
    return lines


def generate_text_report(bundle: Bundle, now: Optional[datetime] = None, verbose: bool = False) -> str:
    """
    Generate human-readable text report for an annotated bundle.

    Args:
        bundle: Bundle after verification
        now: Instant used for "expires in", defaults to now
        verbose: Show full distinguished names and every SAN

    Returns:
        Formatted text report
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    blocks = ["\n".join(_format_certificate(i, record, now, verbose)) for i, record in enumerate(bundle)]
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


def generate_pem_report(bundle: Bundle) -> str:
    """Re-encode every certificate of ``bundle`` as PEM, in bundle order."""
    return bundle_to_pem(bundle)
