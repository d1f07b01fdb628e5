"""Certificate bundle chain verification."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from cryptography import x509
from cryptography.x509.verification import (
    ClientVerifier,
    Criticality,
    ExtensionPolicy,
    Policy,
    PolicyBuilder,
    VerificationError,
)

from cert_inspector.exceptions import ChainVerificationFailure
from cert_inspector.models import Bundle, CertificateRecord, VerificationOutcome
from cert_inspector.trust import TrustRootSet, resolve_roots

logger = logging.getLogger(__name__)


def _to_naive_utc(at: datetime) -> datetime:
    # The path validator interprets naive datetimes as UTC
    if at.tzinfo is None:
        return at
    return at.astimezone(timezone.utc).replace(tzinfo=None)


def _require_ca(policy: Policy, cert: x509.Certificate, ext: x509.BasicConstraints) -> None:
    if not ext.ca:
        raise ValueError(f"issuer {cert.subject.rfc4514_string()} is not a CA")


def _require_cert_sign(policy: Policy, cert: x509.Certificate, ext: Optional[x509.KeyUsage]) -> None:
    if ext is not None and not ext.key_cert_sign:
        raise ValueError(f"issuer {cert.subject.rfc4514_string()} may not sign certificates")


def _build_verifier(roots: TrustRootSet, at: datetime) -> ClientVerifier:
    """
    Build a path validator for ``roots`` evaluated at ``at``.

    Issuers follow plain RFC 5280 rules rather than the WebPKI profile:
    basicConstraints must be present with cA set (any criticality) and
    keyUsage, when present, must allow keyCertSign. Every other extension
    is accepted. The certificate under test gets no extension constraints
    since it may itself be a CA or a root.
    """
    ca_policy = (
        ExtensionPolicy.permit_all()
        .require_present(x509.BasicConstraints, Criticality.AGNOSTIC, _require_ca)
        .may_be_present(x509.KeyUsage, Criticality.AGNOSTIC, _require_cert_sign)
    )
    return (
        PolicyBuilder()
        .store(roots.store)
        .time(_to_naive_utc(at))
        .extension_policies(ca_policy=ca_policy, ee_policy=ExtensionPolicy.permit_all())
        .build_client_verifier()
    )


def _verify_chain_part(
    verifier: ClientVerifier, part: List[CertificateRecord]
) -> Optional[ChainVerificationFailure]:
    """Verify the first certificate of ``part`` using the rest as intermediates."""
    head = part[0]
    intermediates = [record.certificate for record in part[1:]]
    try:
        verifier.verify(head.certificate, intermediates)
    except VerificationError as e:
        return ChainVerificationFailure(head.subject, f"x509 chain verify error: {e}", cause=e)
    return None


def _verify_cert(verifier: ClientVerifier, record: CertificateRecord) -> Optional[ChainVerificationFailure]:
    return _verify_chain_part(verifier, [record])


def verify(
    bundle: Bundle,
    as_chain: bool,
    at: Optional[datetime] = None,
    roots: Optional[TrustRootSet] = None,
) -> List[VerificationOutcome]:
    """
    Verify every certificate of ``bundle`` and annotate it in place.

    Walks the bundle from the last (most root-ward) index to the first. With
    ``as_chain`` the certificate at ``i`` is validated with every certificate
    after it as the intermediate pool, so a bundle can be partially valid:
    each suffix succeeds or fails on its own. Without ``as_chain`` every
    certificate is validated alone, which suits unordered CA lists.

    ``is_root`` is set from the raw-subject membership test against
    ``roots`` and is independent of ``verified``.

    Args:
        bundle: Bundle to verify, annotated in place
        as_chain: Treat the bundle as a leaf-first chain
        at: Evaluation instant, defaults to now
        roots: Trust roots, defaults to the platform store

    Returns:
        One VerificationOutcome per certificate, in bundle order

    Raises:
        PlatformStoreUnavailable: If ``roots`` is None and the platform store
            cannot be loaded
    """
    if roots is None:
        roots = resolve_roots()
    if at is None:
        at = datetime.now(timezone.utc)

    records = bundle.records
    if not records:
        return []

    outcomes: List[Optional[VerificationOutcome]] = [None] * len(records)
    verifier = _build_verifier(roots, at)

    for i in range(len(records) - 1, -1, -1):
        record = records[i]
        if as_chain:
            error = _verify_chain_part(verifier, records[i:])
        else:
            error = _verify_cert(verifier, record)

        if error is None:
            record.verified = True
            record.verify_error = None
        else:
            record.verified = False
            record.verify_error = error
            logger.debug(f"failed to verify chain part at {record.subject}: {error}")

        record.is_root = roots.contains(record)
        outcomes[i] = VerificationOutcome(
            index=i, verified=record.verified, is_root=record.is_root, error=record.verify_error
        )

    verified_count = sum(1 for outcome in outcomes if outcome.verified)
    logger.debug(f"Verified {verified_count}/{len(records)} certificate(s) (as_chain={as_chain})")
    return outcomes
