"""Loading certificate bundles from files, stdin or TLS endpoints."""

import logging
import os
import ssl
import sys
from typing import BinaryIO, Optional

from cert_inspector.certificate import assemble_bundle
from cert_inspector.exceptions import LoadError
from cert_inspector.models import Bundle
from cert_inspector.network import DEFAULT_TIMEOUT, build_tls_addr, fetch_peer_chain
from cert_inspector.pem import certificate_blocks

logger = logging.getLogger(__name__)

STDIN_RESOURCE = "-"


def from_reader(reader: BinaryIO, source: Optional[str] = None) -> Bundle:
    """
    Parse a PEM bundle from a binary stream.

    Only CERTIFICATE blocks are used; other block types are skipped.

    Raises:
        LoadError: If the stream cannot be read
        CertificateParseError: If a CERTIFICATE block is not valid X.509
    """
    try:
        data = reader.read()
    except OSError as e:
        raise LoadError(f"failed to read {source or 'stream'}: {e}") from e
    return assemble_bundle(certificate_blocks(data), source=source)


def from_url(url: str, timeout: float = DEFAULT_TIMEOUT, insecure: bool = False) -> Bundle:
    """
    Fetch the peer chain of a TLS endpoint as a bundle.

    Raises:
        LoadError: If the address is invalid or the connection fails
        CertificateParseError: If the peer sent an unparsable certificate
    """
    try:
        host, port = build_tls_addr(url)
    except ValueError as e:
        raise LoadError(f"building addr: {e}") from e

    try:
        chain = fetch_peer_chain(host, port, timeout=timeout, insecure=insecure)
    except (ConnectionError, ssl.SSLError, OSError) as e:
        raise LoadError(f"failed to connect to {url}: {e}") from e

    return assemble_bundle(chain, source=f"{host}:{port}")


def load(resource: str, timeout: float = DEFAULT_TIMEOUT, insecure: bool = False) -> Bundle:
    """
    Load a bundle from wherever ``resource`` points.

    ``-`` reads PEM from stdin, an existing path is read as a PEM file and
    anything else is treated as a host name or URL to fetch the TLS peer
    chain from.
    """
    if resource == STDIN_RESOURCE:
        logger.debug("Reading bundle from stdin")
        return from_reader(sys.stdin.buffer, source="<stdin>")

    if os.path.exists(resource):
        logger.debug(f"Reading bundle from file {resource}")
        try:
            with open(resource, "rb") as f:
                return from_reader(f, source=resource)
        except OSError as e:
            raise LoadError(f"loading bundle from {resource}: {e}") from e

    logger.debug(f"{resource} is not a file, fetching peer chain")
    return from_url(resource, timeout=timeout, insecure=insecure)
