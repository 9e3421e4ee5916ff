"""
Tests for the signing service facade.

Coverage matrix:

  Preconditions      blank identifier          → ValueError, store not opened
                     missing input             → InputNotFound before lookup
                     unknown identifier        → CredentialNotFound
  Identity present   sign                      → signed_and_verified with match
  Identity absent    default settings          → signed, verification skipped + warning
                     require_identity_attribute → IdentityAttributeMissing, nothing written
  Coverage setting   strict, second signer     → verify() marks first signature invalid
                     same signer twice         → new field verified, strict mode included
  Identity label     reconfigured attribute    → label used in messages
  Defaults           reason / suffix from settings
"""

import pytest

from pdfsigner.app.core.errors import (
    CredentialNotFound,
    IdentityAttributeMissing,
    InputNotFound,
)
from pdfsigner.app.schemas.results import SignStatus
from pdfsigner.app.services.signing import PdfSigningService
from pdfsigner.tests.fixtures.pdf_factory import write_pdf


@pytest.fixture
def service(settings, store):
    return PdfSigningService(settings, store=store)


def _configured(settings, **updates):
    return settings.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("identifier", ["", "   "])
def test_blank_identifier(service, store, tmp_path, identifier):
    source = write_pdf(tmp_path / "in.pdf")

    with pytest.raises(ValueError, match="cannot be null or empty"):
        service.sign(source, tmp_path / "out.pdf", identifier)

    assert store.opened == []


def test_missing_input_checked_before_lookup(service, store, tmp_path, alice):
    with pytest.raises(InputNotFound, match="Input PDF file not found"):
        service.sign(tmp_path / "missing.pdf", tmp_path / "out.pdf", alice.thumbprint)

    assert store.opened == []


def test_unknown_identifier(service, tmp_path):
    source = write_pdf(tmp_path / "in.pdf")

    with pytest.raises(CredentialNotFound) as excinfo:
        service.sign(source, tmp_path / "out.pdf", "CN=Nobody")

    assert excinfo.value.identifier == "CN=Nobody"
    assert "not found in certificate store" in str(excinfo.value)


def test_find_certificate_rejects_blank(service):
    with pytest.raises(ValueError):
        service.find_certificate(None)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

def test_sign_and_verify(service, tmp_path, bob):
    source = write_pdf(tmp_path / "in.pdf")
    target = tmp_path / "out.pdf"

    outcome = service.sign(source, target, "CN=Bob, SERIALNUMBER=B2")

    assert outcome.status is SignStatus.SIGNED_AND_VERIFIED
    assert outcome.field_name == "Signature1"
    assert outcome.certificate_thumbprint == bob.thumbprint
    assert outcome.match.message == "SERIALNUMBER verified: B2"
    assert outcome.warning is None


def test_default_reason_is_embedded(service, tmp_path, alice):
    source = write_pdf(tmp_path / "in.pdf")
    target = tmp_path / "out.pdf"

    service.sign(source, target, alice.thumbprint)

    assert b"Document digitally signed" in target.read_bytes()


def test_missing_identity_skips_verification(service, tmp_path, anonymous):
    source = write_pdf(tmp_path / "in.pdf")
    target = tmp_path / "out.pdf"

    outcome = service.sign(source, target, anonymous.thumbprint)

    assert target.exists()
    assert outcome.status is SignStatus.SIGNED_VERIFICATION_SKIPPED
    assert outcome.match is None
    assert outcome.warning == (
        "Certificate does not have SERIALNUMBER property - verification skipped"
    )


def test_missing_identity_refused_when_required(settings, store, tmp_path, anonymous):
    service = PdfSigningService(
        _configured(settings, require_identity_attribute=True), store=store
    )
    source = write_pdf(tmp_path / "in.pdf")
    target = tmp_path / "out.pdf"

    with pytest.raises(IdentityAttributeMissing, match="refusing to sign"):
        service.sign(source, target, anonymous.thumbprint)

    assert not target.exists()


# ---------------------------------------------------------------------------
# Coverage and batch defaults
# ---------------------------------------------------------------------------

def test_strict_coverage_setting(settings, store, tmp_path, alice, bob):
    source = write_pdf(tmp_path / "doc.pdf")
    lenient = PdfSigningService(settings, store=store)
    strict = PdfSigningService(
        _configured(settings, require_whole_document_coverage=True), store=store
    )

    lenient.sign(source, source, alice.thumbprint)
    lenient.sign(source, source, bob.thumbprint)

    assert lenient.verify(source).is_valid
    first, second = strict.verify(source).signatures
    assert not first.is_valid
    assert second.is_valid


@pytest.mark.parametrize("strict", [False, True])
def test_resign_verifies_new_signature(settings, store, tmp_path, alice, strict):
    service = PdfSigningService(
        _configured(settings, require_whole_document_coverage=strict), store=store
    )
    source = write_pdf(tmp_path / "doc.pdf")

    service.sign(source, source, alice.thumbprint)
    outcome = service.sign(source, source, alice.thumbprint)

    assert outcome.status is SignStatus.SIGNED_AND_VERIFIED
    assert outcome.field_name == "Signature2"
    assert outcome.match.field_name == "Signature2"
    assert outcome.match.covers_whole_document


def test_batch_uses_configured_suffix(settings, store, tmp_path, alice):
    docs = tmp_path / "docs"
    docs.mkdir()
    write_pdf(docs / "a.pdf")
    service = PdfSigningService(
        _configured(settings, output_suffix=".signed"), store=store
    )

    result = service.sign_batch(f"{docs}/", tmp_path / "out", alice.thumbprint)

    assert [e.output_path.name for e in result.entries] == ["a.signed.pdf"]
    assert result.success_count == 1


# ---------------------------------------------------------------------------
# Identity label
# ---------------------------------------------------------------------------

def test_configured_identity_label_in_messages(settings, store, tmp_path, bob):
    service = PdfSigningService(
        _configured(
            settings,
            identity_attribute_keys=("SERIALNUMBER",),
            identity_attribute_label="Employee ID",
        ),
        store=store,
    )
    source = write_pdf(tmp_path / "in.pdf")

    outcome = service.sign(source, tmp_path / "out.pdf", bob.thumbprint)

    assert outcome.match.message == "Employee ID verified: B2"
