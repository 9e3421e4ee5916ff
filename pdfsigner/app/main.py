"""
Command-line entry point.

    pdfsigner list
    pdfsigner sign <input.pdf> <output.pdf> <identifier> [reason] [location]
    pdfsigner batch <pattern> <output_dir> <identifier> [reason] [location] [suffix]
    pdfsigner verify <signed.pdf>

Human-readable results go to stdout, or to ``--output`` (echoed to the
console with ``--console``). Diagnostics go to stderr through logging.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from pdfsigner.app.core.config import get_settings
from pdfsigner.app.core.errors import PdfSignerError, VerificationError
from pdfsigner.app.schemas.results import (
    BatchResult,
    BatchStatus,
    SignOutcome,
    SignStatus,
    StoreListing,
    VerificationOutcome,
)
from pdfsigner.app.services.signing import PdfSigningService
from pdfsigner.app.utils.output import OutputWriter

logger = logging.getLogger(__name__)

BANNER = "PDF Signer using certificate store"

_SCOPE_TITLES = {
    "current_user": "Current User",
    "local_machine": "Local Machine",
}

EXAMPLES = """\
Examples:
  pdfsigner list
  pdfsigner list --output certificates.txt
  pdfsigner sign document.pdf signed_document.pdf "CN=John Doe"
  pdfsigner sign document.pdf signed_document.pdf "John Doe" "Contract signature" "New York"
  pdfsigner sign document.pdf signed_document.pdf A6B149D4A2C7D5F3C5E777640B6534652A674040
  pdfsigner batch "*.pdf" signed localhost
  pdfsigner batch "documents/*.pdf" output "John Doe" "Batch signed" Office -approved -o batch_log.txt
  pdfsigner verify signed_document.pdf
"""


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _common_options(default) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-o", "--output",
        type=Path,
        default=default,
        help="write output to FILE instead of the console",
    )
    common.add_argument(
        "-c", "--console",
        action="store_true",
        default=default,
        help="with --output, also write to the console",
    )
    common.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=default,
        help="enable diagnostic logging on stderr",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfsigner",
        description="Sign and verify PDF documents with certificates "
        "from a certificate store.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[_common_options(None)],
    )
    # Options may also follow the subcommand; SUPPRESS keeps the
    # subparser from overwriting a value given before it.
    sub_common = _common_options(argparse.SUPPRESS)
    commands = parser.add_subparsers(dest="command", metavar="command")

    commands.add_parser(
        "list",
        parents=[sub_common],
        help="list certificates in the certificate store",
    )

    sign = commands.add_parser(
        "sign",
        parents=[sub_common],
        help="sign a PDF file",
    )
    sign.add_argument("input", type=Path, help="PDF file to sign")
    sign.add_argument("output_pdf", type=Path, help="where to save the signed PDF")
    sign.add_argument(
        "identifier",
        help="certificate subject name, partial name, or thumbprint",
    )
    sign.add_argument("reason", nargs="?", help="reason for signing")
    sign.add_argument("location", nargs="?", help="location of signing")

    batch = commands.add_parser(
        "batch",
        parents=[sub_common],
        help="sign every PDF matching a pattern",
    )
    batch.add_argument(
        "pattern",
        help="'*.pdf', 'folder/*.pdf', 'documents/contract*.pdf' or a file",
    )
    batch.add_argument("output_dir", type=Path, help="directory for signed PDFs")
    batch.add_argument(
        "identifier",
        help="certificate subject name, partial name, or thumbprint",
    )
    batch.add_argument("reason", nargs="?", help="reason for signing")
    batch.add_argument("location", nargs="?", help="location of signing")
    batch.add_argument(
        "suffix", nargs="?", help="suffix for output file names"
    )

    verify = commands.add_parser(
        "verify",
        parents=[sub_common],
        help="verify the signatures in a PDF file",
    )
    verify.add_argument("input", type=Path, help="signed PDF file to verify")

    return parser


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_listing(out: OutputWriter, listings: Sequence[StoreListing]) -> None:
    for index, listing in enumerate(listings):
        title = _SCOPE_TITLES.get(listing.scope, listing.scope)
        if index:
            out.line()
        out.line(f"Available certificates in {title} store:")
        if listing.error:
            out.line(f"  {listing.error}")
            continue
        for cert in listing.certificates:
            out.line(f"  Subject: {cert.subject}")
            out.line(f"  Issuer: {cert.issuer}")
            out.line(f"  Serial: {cert.serial_number}")
            out.line(f"  Valid: {cert.not_before} to {cert.not_after}")
            out.line(f"  Has Private Key: {cert.has_private_key}")
            out.line(f"  Thumbprint: {cert.thumbprint}")
            out.line("  ---")


def render_sign(out: OutputWriter, outcome: SignOutcome, label: str) -> None:
    out.line(f"Found certificate: {outcome.certificate_subject}")
    out.line(f"Signature field: {outcome.field_name}")
    out.line("Verifying signature...")
    if outcome.status is SignStatus.SIGNED_VERIFICATION_SKIPPED:
        out.line(f"  ⚠ Warning: {outcome.warning}")
        out.line("✓ PDF signed successfully (verification skipped)")
        return
    if outcome.match is not None:
        out.line(
            f"  ✓ {label} verified: "
            f"{outcome.match.signing_certificate_serial_number}"
        )
    out.line("  ✓ Signature verified and authenticated")
    out.line("✓ PDF signed and verified successfully")


_BATCH_STATUS_TEXT = {
    BatchStatus.SIGNED_AND_VERIFIED: "signed and verified",
    BatchStatus.SIGNED: "signed",
    BatchStatus.SIGNED_VERIFICATION_FAILED: "signed but verification failed",
    BatchStatus.FAILED: "failed",
}


def render_batch(out: OutputWriter, result: BatchResult) -> None:
    if not result.entries:
        out.line("No PDF files found matching pattern")
    else:
        out.line(f"Found {len(result.entries)} PDF file(s) to sign")
        out.line()
    for entry in result.entries:
        status = _BATCH_STATUS_TEXT[entry.status]
        if entry.detail:
            status = f"{status} ({entry.detail})"
        out.line(
            f"{entry.input_path.name} -> {entry.output_path.name} "
            f"- status: {status}"
        )
    out.line("Batch signing completed:")
    out.line(f"  ✓ Successful: {result.success_count}")
    out.line(f"  ✗ Failed: {result.failure_count}")
    out.line(f"  📁 Output directory: {result.output_directory}")


def render_verification(
    out: OutputWriter, outcome: VerificationOutcome, label: str
) -> None:
    out.line(f"Found {outcome.total_signatures} signature(s)")
    for index, sig in enumerate(outcome.signatures, start=1):
        out.line()
        out.line(f"Verifying signature {index}: {sig.name}")
        if sig.is_valid:
            out.line("  ✓ Signature valid")
            out.line(f"  ✓ Certificate: {sig.certificate_subject}")
            out.line(f"  ✓ {label}: {sig.serial_number}")
            if sig.coverage is not None and not sig.covers_whole_document:
                out.line(f"  ✓ Coverage: {sig.coverage.value}")
        else:
            out.line(f"  ✗ {sig.error_message}")
    out.line()
    if outcome.is_valid:
        out.line("✓ PDF signature verification successful")
    else:
        out.line("✗ PDF signature verification failed")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _run(args: argparse.Namespace, service: PdfSigningService, out: OutputWriter) -> int:
    settings = service.settings
    label = service.attribute.label

    if args.command == "list":
        render_listing(out, service.list_certificates())
        return 0

    if args.command == "sign":
        reason = args.reason or settings.default_reason
        location = args.location or settings.default_location
        out.line(f"Signing PDF: {args.input}")
        out.line(f"Output file: {args.output_pdf}")
        out.line(f"Certificate identifier: {args.identifier}")
        out.line(f"Reason: {reason}")
        out.line(f"Location: {location}")
        out.line()
        outcome = service.sign(
            args.input, args.output_pdf, args.identifier, reason, location
        )
        render_sign(out, outcome, label)
        return 0

    if args.command == "batch":
        reason = args.reason or settings.default_reason
        location = args.location or settings.default_location
        suffix = args.suffix if args.suffix is not None else settings.output_suffix
        out.line("Batch signing PDFs:")
        out.line(f"Input pattern: {args.pattern}")
        out.line(f"Output directory: {args.output_dir}")
        out.line(f"Certificate identifier: {args.identifier}")
        out.line(f"Reason: {reason}")
        out.line(f"Location: {location}")
        out.line(f"Output suffix: {suffix}")
        out.line()
        result = service.sign_batch(
            args.pattern, args.output_dir, args.identifier,
            reason, location, suffix,
        )
        render_batch(out, result)
        return 0

    if args.command == "verify":
        out.line(f"Verifying PDF: {args.input}")
        out.line()
        try:
            outcome = service.verify(args.input)
        except VerificationError as exc:
            out.line(f"✗ Verification failed: {exc}")
            return 1
        render_verification(out, outcome, label)
        return 0 if outcome.is_valid else 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    with OutputWriter(args.output, echo=bool(args.console)) as out:
        out.line(BANNER)
        out.line("=" * len(BANNER))

        if args.command is None:
            out.write(parser.format_help())
            return 0

        service = PdfSigningService(settings)
        try:
            return _run(args, service, out)
        except (PdfSignerError, ValueError) as exc:
            logger.debug("command_failed", exc_info=True)
            message = str(exc)
            cause = exc.__cause__
            if cause is not None and str(cause) not in message:
                message = f"{message} ({cause})"
            out.line(f"✗ Error: {message}")
            return 1


if __name__ == "__main__":
    sys.exit(main())
