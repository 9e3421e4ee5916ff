"""
Signing service facade.

Combines certificate lookup, incremental signing and post-signing
verification behind one object configured from ``Settings``. The CLI
talks only to this module.
"""

import logging
from pathlib import Path
from typing import List, Optional

from pdfsigner.app.core.config import Settings
from pdfsigner.app.core.errors import (
    CredentialNotFound,
    IdentityAttributeMissing,
    InputNotFound,
    PdfSignerError,
    VerificationError,
)
from pdfsigner.app.schemas.results import (
    BatchResult,
    SignMatchOutcome,
    SignOutcome,
    SignStatus,
    StoreListing,
    VerificationOutcome,
)
from pdfsigner.app.services.batch import BatchOrchestrator
from pdfsigner.app.services.cert_store import (
    CertificateStore,
    CredentialHandle,
    DirectoryCertificateStore,
    StoreScope,
)
from pdfsigner.app.services.identity import extract_identity
from pdfsigner.app.services.locator import CertificateLocator
from pdfsigner.app.services.pdf_signer import sign_document
from pdfsigner.app.services.verification import (
    verify_document,
    verify_signed_by,
)

logger = logging.getLogger(__name__)


def store_from_settings(settings: Settings) -> DirectoryCertificateStore:
    return DirectoryCertificateStore(
        {
            StoreScope.CURRENT_USER: settings.user_store_dir,
            StoreScope.LOCAL_MACHINE: settings.machine_store_dir,
        },
        passphrase=settings.store_passphrase_bytes,
    )


class PdfSigningService:
    """
    Locate, sign and verify.

    When the signing certificate has no identity attribute, signing
    proceeds and post-signing verification is skipped with a warning,
    unless ``require_identity_attribute`` is set, in which case the
    request is refused before anything is written.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[CertificateStore] = None,
        locator: Optional[CertificateLocator] = None,
    ) -> None:
        self.settings = settings
        if locator is None:
            locator = CertificateLocator(store or store_from_settings(settings))
        self.locator = locator
        self.attribute = settings.identity_attribute

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    def list_certificates(self) -> List[StoreListing]:
        return self.locator.list_certificates()

    def find_certificate(self, identifier: Optional[str]) -> CredentialHandle:
        if not identifier or not identifier.strip():
            raise ValueError("Certificate identifier cannot be null or empty.")

        credential = self.locator.find(identifier)
        if credential is None:
            raise CredentialNotFound(identifier)
        return credential

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign(
        self,
        input_pdf: Path,
        output_pdf: Path,
        identifier: str,
        reason: Optional[str] = None,
        location: Optional[str] = None,
    ) -> SignOutcome:
        """
        Sign ``input_pdf`` into ``output_pdf`` and verify the result.

        Raises:
            ValueError: ``identifier`` is blank.
            InputNotFound: ``input_pdf`` does not exist.
            CredentialNotFound: no usable certificate matches.
            IdentityAttributeMissing: strict mode and the certificate has
                no identity attribute.
            SigningError: signing failed.
            VerificationError: the signed output did not verify.
        """
        if not identifier or not identifier.strip():
            raise ValueError("Certificate identifier cannot be null or empty.")

        input_pdf = Path(input_pdf)
        output_pdf = Path(output_pdf)
        if not input_pdf.is_file():
            raise InputNotFound(f"Input PDF file not found: {input_pdf}")

        credential = self.find_certificate(identifier)
        identity = extract_identity(credential.subject, self.attribute)
        label = self.attribute.label

        if not identity and self.settings.require_identity_attribute:
            raise IdentityAttributeMissing(
                f"{label} property not found in signing certificate subject "
                "- refusing to sign"
            )

        field_name = sign_document(
            input_pdf=input_pdf,
            output_pdf=output_pdf,
            credential=credential,
            reason=reason if reason is not None else self.settings.default_reason,
            location=(
                location if location is not None
                else self.settings.default_location
            ),
        )

        outcome = dict(
            output_path=output_pdf,
            field_name=field_name,
            certificate_subject=credential.subject,
            certificate_thumbprint=credential.thumbprint,
        )

        if not identity:
            warning = (
                f"Certificate does not have {label} property - "
                "verification skipped"
            )
            logger.warning(
                "verification_skipped",
                extra={"thumbprint": credential.thumbprint},
            )
            return SignOutcome(
                **outcome,
                status=SignStatus.SIGNED_VERIFICATION_SKIPPED,
                warning=warning,
            )

        try:
            match = self.verify_signed_by(
                output_pdf, credential, field_name=field_name
            )
        except PdfSignerError as exc:
            raise VerificationError(
                f"Signature verification failed: {exc}"
            ) from exc

        return SignOutcome(
            **outcome,
            status=SignStatus.SIGNED_AND_VERIFIED,
            match=match,
        )

    def sign_batch(
        self,
        pattern: str,
        output_dir: Path,
        identifier: str,
        reason: Optional[str] = None,
        location: Optional[str] = None,
        suffix: Optional[str] = None,
    ) -> BatchResult:
        orchestrator = BatchOrchestrator(
            self.locator,
            attribute=self.attribute,
            require_whole_document=self.settings.require_whole_document_coverage,
        )
        return orchestrator.run(
            pattern,
            Path(output_dir),
            identifier,
            reason=reason if reason is not None else self.settings.default_reason,
            location=(
                location if location is not None
                else self.settings.default_location
            ),
            suffix=suffix if suffix is not None else self.settings.output_suffix,
            verify=self.settings.verify_after_batch_signing,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, pdf_path: Path) -> VerificationOutcome:
        return verify_document(
            Path(pdf_path),
            attribute=self.attribute,
            require_whole_document=self.settings.require_whole_document_coverage,
        )

    def verify_signed_by(
        self,
        pdf_path: Path,
        credential: CredentialHandle,
        field_name: Optional[str] = None,
    ) -> SignMatchOutcome:
        return verify_signed_by(
            Path(pdf_path),
            credential,
            attribute=self.attribute,
            require_whole_document=self.settings.require_whole_document_coverage,
            field_name=field_name,
        )
