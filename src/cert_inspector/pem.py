"""PEM block decoding and encoding."""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import List, TYPE_CHECKING

from cryptography.hazmat.primitives import serialization

if TYPE_CHECKING:
    from cert_inspector.models import Bundle

logger = logging.getLogger(__name__)

PEM_CERT_TYPE = "CERTIFICATE"

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


@dataclass
class PemBlock:
    """A single decoded PEM block."""

    type: str
    data: bytes


def decode_pem(data: bytes) -> List[PemBlock]:
    """
    Decode every PEM block found in ``data``, in source order.

    Text outside of blocks is ignored. RFC 1421 style headers
    (``Proc-Type: ...``) are skipped. Blocks whose body is not valid
    base64 are dropped.
    """
    blocks: List[PemBlock] = []
    for match in _PEM_BLOCK_RE.finditer(data):
        block_type = match.group(1).decode("ascii")
        body_lines = [line.strip() for line in match.group(2).splitlines()]
        body_lines = [line for line in body_lines if line and b":" not in line]
        try:
            payload = base64.b64decode(b"".join(body_lines), validate=True)
        except (binascii.Error, ValueError) as e:
            logger.debug(f"Skipping malformed PEM block of type {block_type}: {e}")
            continue
        blocks.append(PemBlock(type=block_type, data=payload))
    return blocks


def certificate_blocks(data: bytes) -> List[bytes]:
    """Return the DER payloads of all CERTIFICATE blocks in ``data``."""
    ders: List[bytes] = []
    for block in decode_pem(data):
        if block.type != PEM_CERT_TYPE:
            logger.debug(f"Skipping PEM block of type {block.type}")
            continue
        ders.append(block.data)
    return ders


def bundle_to_pem(bundle: "Bundle") -> str:
    """
    Serialize every certificate of ``bundle`` to PEM, in bundle order.

    The encoded payload is the certificate's original DER, so decoding the
    output yields the same bytes that were loaded.
    """
    return "".join(
        record.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
        for record in bundle
    )
