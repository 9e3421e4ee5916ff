"""
Result schemas for signing and verification.

Every outcome returned by the services is a frozen pydantic model. Failure
of a targeted check is an exception (see ``pdfsigner.app.core.errors``);
the models here describe what was found, not what went wrong.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class CoverageState(str, Enum):
    """
    How much of the file a signature's byte range accounts for.

    ``superseded`` is the normal state for every signature except the
    last one in an append-only signed document.
    """

    ENTIRE_DOCUMENT = "entire_document"
    SUPERSEDED = "superseded"
    INCOMPLETE = "incomplete"


class RejectionReason(str, Enum):
    NO_SIGNATURE_DATA = "no_signature_data"
    NO_CERTIFICATE = "no_certificate"
    IDENTITY_ATTRIBUTE_MISSING = "identity_attribute_missing"
    IDENTITY_MISMATCH = "identity_mismatch"


class SignStatus(str, Enum):
    SIGNED_AND_VERIFIED = "signed_and_verified"
    SIGNED_VERIFICATION_SKIPPED = "signed_verification_skipped"


class BatchStatus(str, Enum):
    SIGNED_AND_VERIFIED = "signed_and_verified"
    SIGNED = "signed"
    SIGNED_VERIFICATION_FAILED = "signed_verification_failed"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self in (BatchStatus.SIGNED_AND_VERIFIED, BatchStatus.SIGNED)


# ---------------------------------------------------------------------------
# Open verification
# ---------------------------------------------------------------------------

class SignatureFieldReport(BaseModel):
    """Verification result for a single signature field."""

    name: str
    is_valid: bool

    covers_whole_document: bool = False
    coverage: Optional[CoverageState] = None
    intact: Optional[bool] = Field(
        None,
        description=(
            "Whether the signed bytes still match the embedded digest. "
            "None when the field could not be validated at all."
        ),
    )

    certificate_subject: Optional[str] = None
    serial_number: Optional[str] = Field(
        None,
        description="Identity attribute value from the signer subject",
    )

    error_message: Optional[str] = None

    @model_validator(mode="after")
    def error_explains_failure(self):
        if self.is_valid and self.error_message:
            raise ValueError("A valid signature cannot carry an error")
        if not self.is_valid and not self.error_message:
            raise ValueError("An invalid signature must carry an error")
        return self

    model_config = ConfigDict(frozen=True)


class VerificationOutcome(BaseModel):
    """Aggregate result of open verification over one document."""

    signatures: List[SignatureFieldReport] = Field(default_factory=list)

    @property
    def total_signatures(self) -> int:
        return len(self.signatures)

    @property
    def is_valid(self) -> bool:
        return bool(self.signatures) and all(
            s.is_valid for s in self.signatures
        )

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Targeted verification
# ---------------------------------------------------------------------------

class FieldRejection(BaseModel):
    """Why one signature field did not match the reference credential."""

    field_name: str
    reason: RejectionReason
    detail: Optional[str] = None

    def describe(self) -> str:
        if self.detail:
            return f"{self.field_name}: {self.detail}"
        return f"{self.field_name}: {self.reason.value.replace('_', ' ')}"

    model_config = ConfigDict(frozen=True)


class SignMatchOutcome(BaseModel):
    """A signature field that carries the expected signer identity."""

    signing_certificate_serial_number: str
    pdf_certificate_serial_number: str
    certificate_subject: str
    field_name: str
    covers_whole_document: bool
    message: str

    @property
    def is_valid(self) -> bool:
        return (
            self.signing_certificate_serial_number
            == self.pdf_certificate_serial_number
        )

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Service outcomes
# ---------------------------------------------------------------------------

class SignOutcome(BaseModel):
    output_path: Path
    field_name: str
    certificate_subject: str
    certificate_thumbprint: str
    status: SignStatus
    match: Optional[SignMatchOutcome] = None
    warning: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BatchEntry(BaseModel):
    input_path: Path
    output_path: Path
    status: BatchStatus
    detail: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BatchResult(BaseModel):
    """
    Outcome of one batch run.

    Entries appear in processing order. A file counts as a success when it
    was signed and, if verification ran, verified.
    """

    output_directory: Path
    entries: List[BatchEntry] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for e in self.entries if e.status.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.entries) - self.success_count

    model_config = ConfigDict(frozen=True)


class CertificateSummary(BaseModel):
    subject: str
    issuer: str
    thumbprint: str
    serial_number: str
    not_before: str
    not_after: str
    has_private_key: bool

    model_config = ConfigDict(frozen=True)


class StoreListing(BaseModel):
    """Certificates visible in one store scope, or why they are not."""

    scope: str
    certificates: List[CertificateSummary] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)
