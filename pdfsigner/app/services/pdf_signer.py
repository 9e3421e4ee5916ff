"""
Incremental detached signing of PDF documents.

This module appends a CMS detached signature (``adbe.pkcs7.detached``,
SHA-256) to an existing PDF using pyHanko. The raw signature is produced by
the store credential, so private key material never leaves the credential
handle.

Design guarantees:
- Incremental update only; prior revisions and signatures are untouched
- The input file is never written to
- Output is written only after the signature has been produced
"""

import io
import logging
from pathlib import Path
from typing import Optional, Set

from asn1crypto import algos, x509

from pyhanko.pdf_utils.incremental_writer import IncrementalPdfFileWriter
from pyhanko.sign import signers
from pyhanko.sign.fields import (
    SigFieldSpec,
    SigSeedSubFilter,
    enumerate_sig_fields,
)
from pyhanko_certvalidator.registry import SimpleCertificateStore

from pdfsigner.app.core.errors import (
    InputNotFound,
    OutputUnwritable,
    PdfSignerError,
    PrivateKeyUnavailable,
    SigningError,
    UnsupportedKeyAlgorithm,
)
from pdfsigner.app.services.cert_store import CredentialHandle, KeyAlgorithm

logger = logging.getLogger(__name__)

_FIELD_PREFIX = "Signature"

_MECHANISMS = {
    KeyAlgorithm.RSA: "sha256_rsa",
    KeyAlgorithm.EC: "sha256_ecdsa",
}


# ----------------------------------------------------------------------
# pyHanko Signer
# ----------------------------------------------------------------------

class StoreCredentialSigner(signers.Signer):
    """
    pyHanko Signer that delegates raw signing to a store credential.
    """

    def __init__(self, *, credential: CredentialHandle):
        mechanism = _MECHANISMS.get(credential.key_algorithm)
        if mechanism is None:
            raise UnsupportedKeyAlgorithm(
                "Unsupported key algorithm for certificate "
                f"{credential.thumbprint}"
            )
        if not credential.has_private_key:
            raise PrivateKeyUnavailable(
                f"Certificate {credential.thumbprint} has no private key"
            )

        self._credential = credential

        signing_cert = x509.Certificate.load(credential.raw)
        cert_registry = SimpleCertificateStore()
        cert_registry.register(signing_cert)
        cert_registry.register_multiple(
            x509.Certificate.load(der) for der in credential.chain
        )

        super().__init__(
            signing_cert=signing_cert,
            cert_registry=cert_registry,
            signature_mechanism=algos.SignedDigestAlgorithm(
                {"algorithm": mechanism}
            ),
            prefer_pss=False,
        )

    async def async_sign_raw(
        self,
        data: bytes,
        digest_algorithm: str,
        dry_run: bool = False,
    ) -> bytes:
        # Dry runs sign too: ECDSA signature length is not fixed.
        return self._credential.sign(data, digest_algorithm)


# ----------------------------------------------------------------------
# Field naming
# ----------------------------------------------------------------------

def next_field_name(writer: IncrementalPdfFileWriter) -> str:
    """Return the first ``SignatureN`` name not already used in the document."""
    taken: Set[str] = {
        name for name, _, _ in enumerate_sig_fields(writer)
    }
    index = 1
    while f"{_FIELD_PREFIX}{index}" in taken:
        index += 1
    return f"{_FIELD_PREFIX}{index}"


def _write_output(path: Path, data: bytes) -> None:
    try:
        path.write_bytes(data)
    except OSError as exc:
        raise OutputUnwritable(
            f"Cannot write output PDF {path}: {exc}"
        ) from exc


# ----------------------------------------------------------------------
# Signing
# ----------------------------------------------------------------------

def sign_document(
    *,
    input_pdf: Path,
    output_pdf: Path,
    credential: CredentialHandle,
    reason: str,
    location: Optional[str] = None,
    field_name: Optional[str] = None,
) -> str:
    """
    Append a detached signature to ``input_pdf`` and write ``output_pdf``.

    Args:
        input_pdf:
            Existing PDF document. Read only.
        output_pdf:
            Destination path. May be the same as ``input_pdf``.
        credential:
            Store credential with an RSA or EC private key.
        reason:
            Signing reason embedded in the signature dictionary.
        location:
            Optional signing location.
        field_name:
            Signature field to create. Defaults to the first free
            ``SignatureN``.

    Returns:
        The name of the signature field that was filled.

    Raises:
        SigningError:
            If the document could not be signed. The underlying error
            (``InputNotFound``, ``OutputUnwritable``,
            ``UnsupportedKeyAlgorithm``, ...) is chained as the cause.
    """
    input_pdf = Path(input_pdf)
    output_pdf = Path(output_pdf)

    try:
        if not input_pdf.is_file():
            raise InputNotFound(f"Input PDF file not found: {input_pdf}")
        signer = StoreCredentialSigner(credential=credential)
        source = input_pdf.read_bytes()
    except (PdfSignerError, OSError) as exc:
        raise SigningError(f"Failed to sign PDF: {exc}") from exc

    # ------------------------------------------------------------------
    # Incremental signing
    # ------------------------------------------------------------------
    try:
        writer = IncrementalPdfFileWriter(io.BytesIO(source))
        name = field_name or next_field_name(writer)

        signed = io.BytesIO()
        signers.sign_pdf(
            writer,
            signature_meta=signers.PdfSignatureMetadata(
                field_name=name,
                reason=reason,
                location=location or None,
                md_algorithm="sha256",
                subfilter=SigSeedSubFilter.ADOBE_PKCS7_DETACHED,
            ),
            signer=signer,
            output=signed,
            new_field_spec=SigFieldSpec(sig_field_name=name),
        )
    except Exception as exc:
        raise SigningError(f"Failed to sign PDF: {exc}") from exc

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    try:
        _write_output(output_pdf, signed.getvalue())
    except OutputUnwritable as exc:
        raise SigningError(f"Failed to sign PDF: {exc}") from exc

    logger.info(
        "pdf_signed",
        extra={
            "input": str(input_pdf),
            "output": str(output_pdf),
            "field_name": name,
            "thumbprint": credential.thumbprint,
        },
    )
    return name
