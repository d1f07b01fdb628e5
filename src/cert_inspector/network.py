"""Fetching peer certificate chains from TLS endpoints."""

import ipaddress
import logging
import re
import socket
import ssl
import subprocess
from typing import List, Tuple
from urllib.parse import urlsplit

from cert_inspector.pem import certificate_blocks

logger = logging.getLogger(__name__)

DEFAULT_TLS_PORT = 443
DEFAULT_TIMEOUT = 5.0

_URL_PREFIX_RE = re.compile(r"(https?:)?//")
_HOSTNAME_RE = re.compile(r"^[A-Za-z0-9_]([A-Za-z0-9_.-]*[A-Za-z0-9_.])?$")


def build_tls_addr(resource: str) -> Tuple[str, int]:
    """
    Derive the TLS address to dial from a host name or URL.

    Scheme, path, query, fragment and any explicit port are dropped; the
    address always uses port 443.

    Args:
        resource: e.g. ``example.com``, ``https://example.com/some/?q=1#id``

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If no valid host can be extracted
    """
    if not _URL_PREFIX_RE.search(resource):
        resource = "//" + resource

    try:
        hostname = urlsplit(resource).hostname
    except ValueError as e:
        raise ValueError(f"parsing URL {resource!r}: {e}") from e

    if not hostname:
        raise ValueError(f"no host in {resource!r}")

    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        if not _HOSTNAME_RE.match(hostname):
            raise ValueError(f"invalid host {hostname!r}")

    return hostname, DEFAULT_TLS_PORT


def _extract_chain_via_openssl(host: str, port: int, timeout: float) -> List[bytes]:
    """
    Extract the peer chain using the OpenSSL command line tool.

    Fallback for interpreters whose ssl module cannot expose the chain.

    Returns:
        List of DER-encoded certificates, leaf first; empty on any failure
    """
    openssl_cmd = [
        "openssl", "s_client",
        "-connect", f"{host}:{port}",
        "-servername", host,
        "-showcerts",
    ]
    try:
        result = subprocess.run(
            openssl_cmd,
            input=b"Q\n",
            capture_output=True,
            timeout=timeout + 2,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("OpenSSL command timed out")
        return []
    except FileNotFoundError:
        logger.debug("OpenSSL command not found")
        return []

    chain = certificate_blocks(result.stdout or b"")
    logger.debug(f"Extracted {len(chain)} certificate(s) via OpenSSL")
    return chain


def _peer_chain(ssl_sock: ssl.SSLSocket) -> List[bytes]:
    # get_unverified_chain() is available from Python 3.13
    if not hasattr(ssl_sock, "get_unverified_chain"):
        return []
    chain = ssl_sock.get_unverified_chain() or []
    return [bytes(cert) for cert in chain if cert]


def fetch_peer_chain(
    host: str,
    port: int = DEFAULT_TLS_PORT,
    timeout: float = DEFAULT_TIMEOUT,
    insecure: bool = False,
) -> List[bytes]:
    """
    Dial a TLS endpoint and return the certificates the peer presented.

    The handshake verifies the peer against the default trust store and the
    host name unless ``insecure`` is set.

    Args:
        host: Target hostname (also used for SNI)
        port: Target port
        timeout: Connection timeout in seconds
        insecure: Skip handshake verification

    Returns:
        List of DER-encoded certificates in handshake order (leaf first)

    Raises:
        ConnectionError: If the connection cannot be established
        ssl.SSLError: If the TLS handshake fails
    """
    logger.debug(f"Connecting to {host}:{port} (timeout={timeout}s)")

    context = ssl.create_default_context()
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.warning("Insecure mode enabled - handshake verification disabled")

    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.gaierror as e:
        raise ConnectionError(f"DNS resolution failed for {host}: {e}") from e
    except socket.timeout as e:
        raise ConnectionError(f"Connection timeout after {timeout}s") from e
    except OSError as e:
        raise ConnectionError(f"failed to connect to {host}:{port}: {e}") from e

    with sock:
        try:
            with context.wrap_socket(sock, server_hostname=host) as ssl_sock:
                logger.debug(f"TLS handshake completed ({ssl_sock.version()})")
                leaf_der = ssl_sock.getpeercert(binary_form=True)
                chain = _peer_chain(ssl_sock)
        except socket.timeout as e:
            raise ConnectionError(f"Connection timeout after {timeout}s") from e

    if not leaf_der:
        raise ssl.SSLError("No certificate received from server")

    if chain:
        logger.debug(f"Received {len(chain)} certificate(s) in chain")
        return chain

    logger.info("Peer chain not exposed by the ssl module, extracting via OpenSSL...")
    chain = _extract_chain_via_openssl(host, port, timeout)
    if chain and chain[0] == leaf_der:
        return chain

    logger.warning("Could not extract certificate chain, continuing with the leaf only")
    return [leaf_der]
