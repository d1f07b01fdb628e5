"""Shared fixtures: a throw-away root / intermediate / leaf hierarchy."""

import base64
import ipaddress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


ROOT_NOT_BEFORE = datetime(2020, 1, 1, tzinfo=timezone.utc)
ROOT_NOT_AFTER = datetime(2040, 1, 1, tzinfo=timezone.utc)
INTERMEDIATE_NOT_BEFORE = datetime(2021, 1, 1, tzinfo=timezone.utc)
INTERMEDIATE_NOT_AFTER = datetime(2035, 1, 1, tzinfo=timezone.utc)
LEAF_NOT_BEFORE = datetime(2024, 1, 1, tzinfo=timezone.utc)
LEAF_NOT_AFTER = datetime(2025, 1, 1, tzinfo=timezone.utc)

# Inside all three validity windows
VALID_AT = datetime(2024, 6, 1, tzinfo=timezone.utc)
# After the leaf expired, inside intermediate and root windows
LEAF_EXPIRED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "DE"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Org"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _ca_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=True,
        encipher_only=False,
        decipher_only=False,
    )


def _leaf_key_usage() -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def make_root(
    common_name: str,
    key: ec.EllipticCurvePrivateKey,
    not_before: datetime = ROOT_NOT_BEFORE,
    not_after: datetime = ROOT_NOT_AFTER,
    ca: Optional[bool] = True,
    basic_constraints_critical: bool = True,
    key_usage: Optional[x509.KeyUsage] = None,
    with_key_usage: bool = True,
) -> x509.Certificate:
    """
    Create a self-signed certificate.

    ``ca=None`` leaves out basicConstraints; ``with_key_usage=False`` leaves out
    keyUsage the way a bare ``openssl req -x509`` root does.
    """
    name = _name(common_name)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if ca is not None:
        builder = builder.add_extension(
            x509.BasicConstraints(ca=ca, path_length=None), critical=basic_constraints_critical
        )
    if with_key_usage:
        builder = builder.add_extension(key_usage or _ca_key_usage(), critical=True)
    return builder.sign(key, hashes.SHA256())


def make_issued(
    common_name: str,
    key: ec.EllipticCurvePrivateKey,
    issuer: x509.Certificate,
    issuer_key: ec.EllipticCurvePrivateKey,
    not_before: datetime,
    not_after: datetime,
    ca: bool = False,
    basic_constraints_critical: bool = True,
    sans: Optional[List[x509.GeneralName]] = None,
) -> x509.Certificate:
    """Create a certificate signed by ``issuer``."""
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(issuer.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
    )
    if ca:
        builder = (
            builder
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=basic_constraints_critical)
            .add_extension(_ca_key_usage(), critical=True)
        )
    else:
        builder = (
            builder
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(_leaf_key_usage(), critical=True)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        )
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)
    return builder.sign(issuer_key, hashes.SHA256())


def der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def pem_block(data: bytes, block_type: str = "CERTIFICATE") -> str:
    """Wrap arbitrary bytes in a PEM block, for feeding malformed input."""
    body = base64.b64encode(data).decode("ascii")
    return f"-----BEGIN {block_type}-----\n{body}\n-----END {block_type}-----\n"


@dataclass
class Pki:
    root: x509.Certificate
    intermediate: x509.Certificate
    leaf: x509.Certificate
    root_key: ec.EllipticCurvePrivateKey

    @property
    def chain_ders(self) -> List[bytes]:
        """Leaf first, root last."""
        return [der(self.leaf), der(self.intermediate), der(self.root)]

    def chain_pem(self) -> bytes:
        return b"".join(
            cert.public_bytes(serialization.Encoding.PEM) for cert in (self.leaf, self.intermediate, self.root)
        )

    def root_pem(self) -> bytes:
        return self.root.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def pki() -> Pki:
    """Root, intermediate and leaf with overlapping, fixed validity windows."""
    root_key = ec.generate_private_key(ec.SECP256R1())
    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    leaf_key = ec.generate_private_key(ec.SECP256R1())

    root = make_root("Example Root CA", root_key)
    intermediate = make_issued(
        "Example Intermediate CA",
        intermediate_key,
        root,
        root_key,
        INTERMEDIATE_NOT_BEFORE,
        INTERMEDIATE_NOT_AFTER,
        ca=True,
    )
    leaf = make_issued(
        "leaf.example.com",
        leaf_key,
        intermediate,
        intermediate_key,
        LEAF_NOT_BEFORE,
        LEAF_NOT_AFTER,
        sans=[
            x509.DNSName("leaf.example.com"),
            x509.DNSName("www.leaf.example.com"),
            x509.RFC822Name("admin@example.com"),
            x509.IPAddress(ipaddress.ip_address("192.0.2.10")),
            x509.UniformResourceIdentifier("https://leaf.example.com/"),
        ],
    )
    return Pki(root=root, intermediate=intermediate, leaf=leaf, root_key=root_key)


@pytest.fixture(scope="session")
def other_root() -> x509.Certificate:
    """A self-signed CA unrelated to the ``pki`` hierarchy."""
    return make_root("Unrelated Root CA", ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture
def roots_file(tmp_path, pki):
    path = tmp_path / "roots.pem"
    path.write_bytes(pki.root_pem())
    return path


@pytest.fixture
def chain_file(tmp_path, pki):
    path = tmp_path / "fullchain.pem"
    path.write_bytes(pki.chain_pem())
    return path
