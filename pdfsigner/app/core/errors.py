"""
Error taxonomy for the PDF signer.

Lookups (certificate location, identity extraction) do not raise; they
return ``None`` or an empty string. Signing and targeted verification
raise exactly one descriptive error per call, chaining the underlying
cause with ``raise ... from``.
"""

from __future__ import annotations

from typing import List, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from pdfsigner.app.schemas.results import FieldRejection


class PdfSignerError(RuntimeError):
    """Base class for all domain errors raised by this package."""


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

class CredentialNotFound(PdfSignerError):
    """No usable certificate matched the supplied identifier."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            f"Certificate with identifier '{identifier}' not found in "
            "certificate store."
        )


class StoreAccessError(PdfSignerError):
    """A credential store scope could not be opened or read."""


class UnsupportedKeyAlgorithm(PdfSignerError):
    """The credential's key is neither RSA nor elliptic-curve."""


class PrivateKeyUnavailable(PdfSignerError):
    """The credential has no accessible private key."""


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

class InputNotFound(PdfSignerError):
    """The input document does not exist or cannot be read."""


class OutputUnwritable(PdfSignerError):
    """The output location cannot be written."""


class DirectoryNotFound(PdfSignerError):
    """The directory named by a batch input pattern does not exist."""


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

class SigningError(PdfSignerError):
    """Raised when a document could not be signed. The cause is chained."""


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class VerificationError(PdfSignerError):
    """Base class for verification failures."""


class NoSignaturesPresent(VerificationError):
    def __init__(self) -> None:
        super().__init__("No signatures found in the PDF")


class IdentityAttributeMissing(VerificationError):
    """The reference credential carries no identity attribute."""


class SignatureCoverageViolation(VerificationError):
    """A matched signature does not cover the document as required."""


class CryptographicVerificationFailure(VerificationError):
    """A matched signature failed the integrity/authenticity check."""


class SignatureIdentityMismatch(VerificationError):
    """
    No signature field carries the expected identity.

    Aggregates the per-field rejection reasons collected while scanning
    the document.
    """

    def __init__(
        self,
        expected: str,
        rejections: Sequence["FieldRejection"],
        label: str = "SERIALNUMBER",
    ) -> None:
        self.expected = expected
        self.rejections: List["FieldRejection"] = list(rejections)
        checked = "; ".join(r.describe() for r in self.rejections)
        super().__init__(
            f"No signature found matching certificate with {label} "
            f"'{expected}'. Checked signatures: {checked}"
        )
