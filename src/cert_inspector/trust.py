"""Trust root resolution: platform default store or an explicit PEM bundle."""

import functools
import logging
import os
import ssl
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import certifi
from cryptography import x509
from cryptography.x509.verification import Store

from cert_inspector.certificate import _load_certificate
from cert_inspector.exceptions import PlatformStoreUnavailable, RootsParseError
from cert_inspector.models import CertificateRecord
from cert_inspector.pem import certificate_blocks

logger = logging.getLogger(__name__)

PLATFORM_SOURCE = "platform"

_SYSTEM_BUNDLE_PATHS = [
    "/etc/ssl/certs/ca-certificates.crt",  # Debian/Ubuntu/Gentoo
    "/etc/pki/tls/certs/ca-bundle.crt",  # Fedora/RHEL
    "/etc/ssl/cert.pem",  # Alpine/macOS/BSD
]


class TrustRootSet:
    """
    Immutable set of trusted root certificates for a verification pass.

    Safe to share between verification calls that work on distinct bundles.
    """

    def __init__(self, certificates: Sequence[x509.Certificate], source: str):
        if not certificates:
            raise ValueError("a trust root set needs at least one certificate")
        self._certificates = tuple(certificates)
        self._subjects = frozenset(cert.subject.public_bytes() for cert in self._certificates)
        self._store = Store(list(self._certificates))
        self.source = source

    def __len__(self) -> int:
        return len(self._certificates)

    def __repr__(self) -> str:
        return f"TrustRootSet(source={self.source!r}, certificates={len(self._certificates)})"

    @property
    def certificates(self) -> List[x509.Certificate]:
        return list(self._certificates)

    @property
    def store(self) -> Store:
        """Trust anchors in the form the path validator consumes."""
        return self._store

    def contains(self, candidate: CertificateRecord) -> bool:
        """
        Report whether ``candidate`` looks like one of the roots.

        Compares the DER encoding of the subject name only. This is an
        identity heuristic and says nothing about whether the candidate's
        signature or validity would pass path validation.
        """
        return candidate.raw_subject in self._subjects


def _parse_pem_certificates(data: bytes, origin: str) -> List[x509.Certificate]:
    certs: List[x509.Certificate] = []
    for der in certificate_blocks(data):
        try:
            certs.append(_load_certificate(der))
        except ValueError as e:
            logger.debug(f"Skipping unparsable certificate in {origin}: {e}")
    return certs


def _load_macos_keychain_certificates() -> List[x509.Certificate]:
    """Load certificates from the macOS system keychains via the security command."""
    try:
        result = subprocess.run(
            ["security", "find-certificate", "-a", "-p",
             "/System/Library/Keychains/SystemRootCertificates.keychain"],
            capture_output=True,
            timeout=10,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("Timeout loading Keychain certificates")
        return []
    except FileNotFoundError:
        logger.debug("security command not found")
        return []

    if result.returncode != 0 or not result.stdout:
        return []
    return _parse_pem_certificates(result.stdout, "macOS Keychain")


def _system_bundle_paths() -> List[str]:
    paths: List[str] = []
    default_paths = ssl.get_default_verify_paths()
    # cafile honours SSL_CERT_FILE
    if default_paths.cafile:
        paths.append(default_paths.cafile)
    for path in _SYSTEM_BUNDLE_PATHS:
        if path not in paths:
            paths.append(path)
    return paths


@functools.lru_cache(maxsize=1)
def load_platform_roots() -> TrustRootSet:
    """
    Load the platform default trust store.

    Combines the certifi bundle with the operating system CA bundle (and the
    system keychain on macOS). The result is cached for the process lifetime.

    Raises:
        PlatformStoreUnavailable: If no certificate could be loaded at all
    """
    certs: List[x509.Certificate] = []

    certifi_path = certifi.where()
    try:
        with open(certifi_path, "rb") as f:
            loaded = _parse_pem_certificates(f.read(), certifi_path)
        certs.extend(loaded)
        logger.debug(f"Loaded {len(loaded)} certificate(s) from certifi ({certifi_path})")
    except OSError as e:
        logger.debug(f"Cannot read certifi bundle {certifi_path}: {e}")

    if sys.platform == "darwin":
        keychain_certs = _load_macos_keychain_certificates()
        certs.extend(keychain_certs)
        logger.debug(f"Loaded {len(keychain_certs)} certificate(s) from macOS Keychain")
    elif os.name == "posix":
        for path in _system_bundle_paths():
            if not os.path.exists(path):
                continue
            try:
                with open(path, "rb") as f:
                    loaded = _parse_pem_certificates(f.read(), path)
            except OSError as e:
                logger.debug(f"Cannot read system bundle {path}: {e}")
                continue
            certs.extend(loaded)
            logger.debug(f"Loaded {len(loaded)} certificate(s) from {path}")
            break

    if not certs:
        raise PlatformStoreUnavailable("no certificates found in the platform trust store")

    logger.debug(f"Platform trust store holds {len(certs)} certificate(s)")
    return TrustRootSet(certs, source=PLATFORM_SOURCE)


def load_roots_file(path: Path) -> TrustRootSet:
    """
    Build a trust root set from every CERTIFICATE block of a PEM file.

    Raises:
        RootsParseError: If the file is unreadable or holds no parsable certificate
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise RootsParseError(f"cannot read roots bundle file {str(path)!r}: {e}") from e

    certs = _parse_pem_certificates(data, str(path))
    if not certs:
        raise RootsParseError(f"no root certificate was parsed from {str(path)!r}")

    logger.debug(f"Loaded {len(certs)} root certificate(s) from {path}")
    return TrustRootSet(certs, source=str(path))


def resolve_roots(explicit_path: Optional[Path] = None) -> TrustRootSet:
    """
    Resolve the trust roots for a verification pass.

    Args:
        explicit_path: PEM bundle to use instead of the platform store

    Returns:
        TrustRootSet

    Raises:
        RootsParseError: Explicit bundle unreadable or empty
        PlatformStoreUnavailable: Platform store could not be loaded
    """
    if explicit_path is not None:
        return load_roots_file(explicit_path)
    return load_platform_roots()
