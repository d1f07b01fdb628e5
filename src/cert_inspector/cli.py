"""CLI entry point using Typer."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from cert_inspector.chain import verify
from cert_inspector.exceptions import CertInspectorError
from cert_inspector.loader import load
from cert_inspector.network import DEFAULT_TIMEOUT
from cert_inspector.reporter import generate_pem_report, generate_text_report, set_color_output
from cert_inspector.trust import resolve_roots

app = typer.Typer(help="Inspect and verify X.509 certificate bundles")

logger = logging.getLogger(__name__)

_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,9})?(Z|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Raises:
        ValueError: If the value is malformed or carries no UTC offset
    """
    value = value.strip()
    if not _RFC3339_RE.match(value):
        raise ValueError(f"timestamp {value!r} is not in RFC3339 format")
    date_time, dot, rest = value.partition(".")
    if dot:
        # fromisoformat takes at most microseconds
        digits = re.match(r"\d+", rest).group(0)
        value = f"{date_time}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


@app.command()
def main(
    resource: str = typer.Argument(..., help="PEM file, '-' for stdin, or host/URL to fetch the TLS chain from"),
    time: Optional[str] = typer.Option(None, "--time", "-t", help="Override date and time for validation (RFC3339 format)"),
    nochain: bool = typer.Option(False, "--nochain", "-n", help="Disable chain validation"),
    roots: Optional[Path] = typer.Option(None, "--roots", "-r", help="Path to root certificates bundle in PEM format"),
    pem: bool = typer.Option(False, "--pem", "-p", help="Output in PEM format instead of text"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output and debug logging"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="TLS connection timeout in seconds"),
    insecure: bool = typer.Option(False, "--insecure", help="Do not verify the TLS handshake when fetching a chain"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """Verify a certificate bundle and print it."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    set_color_output(color)

    at: Optional[datetime] = None
    if time:
        try:
            at = parse_rfc3339(time)
        except ValueError as e:
            _fail(f"invalid --time value: {e}")

    try:
        bundle = load(resource, timeout=timeout, insecure=insecure)
        trust_roots = resolve_roots(roots)
        as_chain = len(bundle) > 1 and not nochain
        verify(bundle, as_chain=as_chain, at=at, roots=trust_roots)
    except CertInspectorError as e:
        logger.debug("Aborting", exc_info=True)
        _fail(str(e))

    logger.debug(f"Loaded {len(bundle)} certificate(s) from {bundle.source}, trust roots: {trust_roots.source}")

    if pem:
        typer.echo(generate_pem_report(bundle), nl=False)
    else:
        typer.echo(generate_text_report(bundle, now=at, verbose=verbose), nl=False)


if __name__ == "__main__":
    app()
