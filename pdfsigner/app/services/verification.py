"""
Signature verification for signed PDF documents.

Two entry points are provided:

- ``verify_document`` reports on every signature field in a document.
- ``verify_signed_by`` finds the signature made with a given credential.

Signer identity is correlated through an attribute of the certificate
subject (by default SERIALNUMBER). This is an application naming
convention and NOT a trust decision: no certificate chain is built, no
revocation data is consulted, and a self-issued certificate carrying the
right attribute will match. Cryptographic checks (digest integrity and
signature validity) are delegated to pyHanko with an empty trust store.

Coverage
--------
Each signature's /ByteRange is classified as one of:

- entire_document: covers every byte of the file
- superseded: covers its own revision, and the file is sealed by a later
  signature that covers every byte
- incomplete: anything else, including unsigned changes appended after
  the last signature

``superseded`` is the normal state of every signature but the last in an
append-only signed document. Strict mode (``require_whole_document``)
treats it as a violation.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from asn1crypto import cms, core
from asn1crypto import x509 as asn1_x509
from cryptography import x509

from pyhanko.pdf_utils.misc import PdfError
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.sign.fields import enumerate_sig_fields
from pyhanko.sign.validation import (
    SignatureCoverageLevel,
    validate_pdf_signature,
)
from pyhanko.sign.validation.errors import SignatureValidationError
from pyhanko.sign.validation.pdf_embedded import EmbeddedPdfSignature
from pyhanko_certvalidator import ValidationContext

from pdfsigner.app.core.errors import (
    CryptographicVerificationFailure,
    IdentityAttributeMissing,
    InputNotFound,
    NoSignaturesPresent,
    SignatureCoverageViolation,
    SignatureIdentityMismatch,
    VerificationError,
)
from pdfsigner.app.schemas.results import (
    CoverageState,
    FieldRejection,
    RejectionReason,
    SignatureFieldReport,
    SignMatchOutcome,
    VerificationOutcome,
)
from pdfsigner.app.services.cert_store import CredentialHandle, describe_name
from pdfsigner.app.services.identity import (
    IdentityAttribute,
    SERIAL_NUMBER_ATTRIBUTE,
    extract_identity,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal scan records
# ---------------------------------------------------------------------------

@dataclass
class _ScannedField:
    """
    What could be read from one filled signature field without validating.

    ``rejection`` is set when the field cannot be correlated to a signer
    (unreadable data, no certificate, no identity attribute).
    """

    name: str
    field_ref: object
    byte_range: Optional[Tuple[int, int, int, int]] = None
    subject: Optional[str] = None
    identity: str = ""
    rejection: Optional[FieldRejection] = None

    @property
    def end(self) -> int:
        if self.byte_range is None:
            return -1
        return self.byte_range[2] + self.byte_range[3]

    def covers_bytes(self, size: int) -> bool:
        return (
            self.byte_range is not None
            and self.byte_range[0] == 0
            and self.end == size
        )


@dataclass
class _CryptoResult:
    intact: bool
    valid: bool
    coverage: Optional[SignatureCoverageLevel]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.intact and self.valid


@dataclass
class _Document:
    reader: PdfFileReader
    size: int
    fields: List[_ScannedField]

    @property
    def sealed(self) -> bool:
        """Whether the last signature covers every byte of the file."""
        return bool(self.fields) and self.fields[-1].covers_bytes(self.size)


# ---------------------------------------------------------------------------
# CMS helpers
# ---------------------------------------------------------------------------

def _byte_range(sig_value) -> Optional[Tuple[int, int, int, int]]:
    if "/ByteRange" not in sig_value:
        return None
    byte_range = sig_value["/ByteRange"]
    if not isinstance(byte_range, list) or len(byte_range) != 4:
        return None
    if not all(
        isinstance(v, int) and not isinstance(v, bool) for v in byte_range
    ):
        return None
    return tuple(int(v) for v in byte_range)


def _signed_data(sig_value) -> Optional[cms.SignedData]:
    if "/Contents" not in sig_value:
        return None
    # Text and byte strings both keep the undecoded bytes.
    contents = getattr(sig_value["/Contents"], "original_bytes", None)
    if contents is None:
        return None
    try:
        info = cms.ContentInfo.load(contents)
        if info["content_type"].native != "signed_data":
            return None
        signed_data = info["content"]
        if len(signed_data["signer_infos"]) == 0:
            return None
    except (ValueError, TypeError, KeyError) as exc:
        logger.debug("CMS parsing failed: %s", exc)
        return None
    return signed_data


def _signer_certificate(
    signed_data: cms.SignedData,
) -> Optional[asn1_x509.Certificate]:
    cert_set = signed_data["certificates"]
    if isinstance(cert_set, core.Void):
        return None

    certs = [c.chosen for c in cert_set if c.name == "certificate"]
    sid = signed_data["signer_infos"][0]["sid"]

    if sid.name == "issuer_and_serial_number":
        issuer = sid.chosen["issuer"]
        serial = sid.chosen["serial_number"].native
        for cert in certs:
            if cert.issuer == issuer and cert.serial_number == serial:
                return cert
    elif sid.name == "subject_key_identifier":
        for cert in certs:
            if cert.key_identifier == sid.chosen.native:
                return cert
    return None


def _subject_of(cert: asn1_x509.Certificate) -> str:
    return describe_name(x509.load_der_x509_certificate(cert.dump()).subject)


# ---------------------------------------------------------------------------
# Document scanning
# ---------------------------------------------------------------------------

def _scan_field(
    name: str,
    sig_value,
    field_ref,
    attribute: IdentityAttribute,
) -> _ScannedField:
    sig_value = sig_value.get_object()
    scanned = _ScannedField(name=name, field_ref=field_ref)
    scanned.byte_range = _byte_range(sig_value)

    signed_data = _signed_data(sig_value) if scanned.byte_range else None
    if signed_data is None:
        scanned.rejection = FieldRejection(
            field_name=name,
            reason=RejectionReason.NO_SIGNATURE_DATA,
            detail="Could not read signature data",
        )
        return scanned

    try:
        cert = _signer_certificate(signed_data)
        subject = _subject_of(cert) if cert is not None else None
    except (ValueError, TypeError, KeyError) as exc:
        logger.debug("Signer certificate unreadable in %s: %s", name, exc)
        subject = None

    if subject is None:
        scanned.rejection = FieldRejection(
            field_name=name,
            reason=RejectionReason.NO_CERTIFICATE,
            detail="No signing certificate found",
        )
        return scanned

    scanned.subject = subject
    scanned.identity = extract_identity(subject, attribute)
    if not scanned.identity:
        scanned.rejection = FieldRejection(
            field_name=name,
            reason=RejectionReason.IDENTITY_ATTRIBUTE_MISSING,
            detail=f"No {attribute.label} in certificate",
        )
    return scanned


def _open_document(pdf_path: Path, attribute: IdentityAttribute) -> _Document:
    if not pdf_path.is_file():
        raise InputNotFound(f"PDF file not found: {pdf_path}")

    try:
        data = pdf_path.read_bytes()
        reader = PdfFileReader(io.BytesIO(data))
        fields = [
            _scan_field(name, sig_value, field_ref, attribute)
            for name, sig_value, field_ref in enumerate_sig_fields(
                reader, filled_status=True
            )
        ]
    except (PdfError, ValueError, KeyError, TypeError, OSError) as exc:
        raise VerificationError(f"PDF verification failed: {exc}") from exc

    fields.sort(key=lambda f: f.end)
    return _Document(reader=reader, size=len(data), fields=fields)


# ---------------------------------------------------------------------------
# Cryptographic validation and coverage
# ---------------------------------------------------------------------------

def _validate(document: _Document, field: _ScannedField) -> _CryptoResult:
    """Run pyHanko integrity and signature checks with no trust roots."""
    try:
        embedded = EmbeddedPdfSignature(
            document.reader, field.field_ref, field.name
        )
        status = validate_pdf_signature(
            embedded,
            signer_validation_context=ValidationContext(
                trust_roots=[], allow_fetching=False
            ),
        )
    except (SignatureValidationError, PdfError, ValueError) as exc:
        logger.warning(
            "signature_validation_failed",
            extra={"field_name": field.name, "error": str(exc)},
        )
        return _CryptoResult(
            intact=False, valid=False, coverage=None, error=str(exc)
        )

    return _CryptoResult(
        intact=bool(status.intact),
        valid=bool(status.valid),
        coverage=status.coverage,
    )


def classify_coverage(
    document: _Document,
    field: _ScannedField,
    level: Optional[SignatureCoverageLevel],
) -> CoverageState:
    is_last = field is document.fields[-1]

    if level is SignatureCoverageLevel.ENTIRE_FILE or (
        level is None and field.covers_bytes(document.size)
    ):
        return CoverageState.ENTIRE_DOCUMENT

    own_revision = level is SignatureCoverageLevel.ENTIRE_REVISION or (
        level is None
        and field.byte_range is not None
        and field.byte_range[0] == 0
    )
    if own_revision and not is_last and document.sealed:
        return CoverageState.SUPERSEDED

    return CoverageState.INCOMPLETE


def _coverage_acceptable(state: CoverageState, strict: bool) -> bool:
    if strict:
        return state is CoverageState.ENTIRE_DOCUMENT
    return state is not CoverageState.INCOMPLETE


# ---------------------------------------------------------------------------
# Open verification
# ---------------------------------------------------------------------------

def _report(
    document: _Document,
    field: _ScannedField,
    attribute: IdentityAttribute,
    strict: bool,
) -> SignatureFieldReport:
    name = field.name

    if field.rejection is not None and field.subject is None:
        if field.rejection.reason is RejectionReason.NO_SIGNATURE_DATA:
            error = f"Could not read signature data for {name}"
        else:
            error = f"No signing certificate found in signature {name}"
        return SignatureFieldReport(name=name, is_valid=False, error_message=error)

    crypto = _validate(document, field)
    coverage = classify_coverage(document, field, crypto.coverage)

    error = None
    if not field.identity:
        error = (
            f"{attribute.label} property not found in certificate subject "
            f"for signature {name} - verification failed"
        )
    elif not _coverage_acceptable(coverage, strict):
        error = _coverage_message(name, strict)
    elif not crypto.ok:
        error = f"Signature integrity verification failed for {name}"
        if crypto.error:
            error = f"{error}: {crypto.error}"

    return SignatureFieldReport(
        name=name,
        is_valid=error is None,
        covers_whole_document=coverage is CoverageState.ENTIRE_DOCUMENT,
        coverage=coverage,
        intact=crypto.intact if crypto.error is None else None,
        certificate_subject=field.subject,
        serial_number=field.identity or None,
        error_message=error,
    )


def _coverage_message(name: str, strict: bool) -> str:
    if strict:
        return f"Signature {name} does not cover the whole document"
    return (
        f"Signature {name} is followed by changes that no later "
        "signature covers"
    )


def verify_document(
    pdf_path: Path,
    *,
    attribute: IdentityAttribute = SERIAL_NUMBER_ATTRIBUTE,
    require_whole_document: bool = False,
) -> VerificationOutcome:
    """
    Verify every signature field in ``pdf_path``.

    Each field is checked in the order data, certificate, identity,
    coverage, cryptography; the first failure becomes its error message.
    The outcome is valid only if every field is.

    Raises:
        InputNotFound: the file does not exist.
        NoSignaturesPresent: the document has no filled signature fields.
        VerificationError: the file is not a readable PDF.
    """
    document = _open_document(Path(pdf_path), attribute)
    if not document.fields:
        raise NoSignaturesPresent()

    reports = [
        _report(document, field, attribute, require_whole_document)
        for field in document.fields
    ]
    outcome = VerificationOutcome(signatures=reports)

    logger.info(
        "pdf_verified",
        extra={
            "path": str(pdf_path),
            "total_signatures": outcome.total_signatures,
            "valid": outcome.is_valid,
        },
    )
    return outcome


# ---------------------------------------------------------------------------
# Targeted verification
# ---------------------------------------------------------------------------

def verify_signed_by(
    pdf_path: Path,
    credential: CredentialHandle,
    *,
    attribute: IdentityAttribute = SERIAL_NUMBER_ATTRIBUTE,
    require_whole_document: bool = False,
    field_name: Optional[str] = None,
) -> SignMatchOutcome:
    """
    Find and check the signature made with ``credential``.

    Fields are scanned in document order and the first whose signer
    identity equals the credential's is checked for coverage and
    cryptographic validity. Fields that do not match are recorded and
    reported if nothing matches.

    ``field_name`` restricts the search to one field. A credential that
    signed the document more than once otherwise matches its earliest
    signature.

    Raises:
        IdentityAttributeMissing: the credential has no identity attribute.
            Raised before the document is opened.
        NoSignaturesPresent: the document has no filled signature fields.
        SignatureCoverageViolation: the matching field's coverage is not
            acceptable.
        CryptographicVerificationFailure: the matching field failed
            integrity or signature checks.
        SignatureIdentityMismatch: no field carries the expected identity.
    """
    expected = extract_identity(credential.subject, attribute)
    if not expected:
        raise IdentityAttributeMissing(
            f"{attribute.label} property not found in signing certificate "
            "subject - verification failed"
        )

    document = _open_document(Path(pdf_path), attribute)
    if not document.fields:
        raise NoSignaturesPresent()

    rejections: List[FieldRejection] = []
    for field in document.fields:
        if field_name is not None and field.name != field_name:
            continue

        if field.rejection is not None:
            rejections.append(field.rejection)
            continue

        if field.identity != expected:
            rejections.append(
                FieldRejection(
                    field_name=field.name,
                    reason=RejectionReason.IDENTITY_MISMATCH,
                    detail=(
                        f"{attribute.label} mismatch (expected: {expected}, "
                        f"found: {field.identity})"
                    ),
                )
            )
            continue

        crypto = _validate(document, field)
        coverage = classify_coverage(document, field, crypto.coverage)

        if not _coverage_acceptable(coverage, require_whole_document):
            raise SignatureCoverageViolation(
                _coverage_message(f"'{field.name}'", require_whole_document)
            )
        if not crypto.ok:
            raise CryptographicVerificationFailure(
                f"Signature '{field.name}' integrity verification failed"
            )

        logger.info(
            "signature_matched",
            extra={"field_name": field.name, "identity": expected},
        )
        return SignMatchOutcome(
            signing_certificate_serial_number=expected,
            pdf_certificate_serial_number=field.identity,
            certificate_subject=field.subject or "",
            field_name=field.name,
            covers_whole_document=coverage is CoverageState.ENTIRE_DOCUMENT,
            message=f"{attribute.label} verified: {expected}",
        )

    raise SignatureIdentityMismatch(expected, rejections, label=attribute.label)
