"""
Tests for signer identity extraction from subject DNs.

Coverage matrix:

  Key spellings      SERIALNUMBER= / OID.2.5.4.5= / SN=, any case     → value
  Separators         , ; \\n \\r                                       → value
  Malformed tokens   no '=', empty value                               → skipped
  Absent / empty     None, "", no attribute                            → ""
  First match wins   two serial attributes                             → first
  Idempotence        extracting twice gives the same value
  Custom attribute   configured keys only
"""

import pytest

from pdfsigner.app.services.cert_store import describe_name
from pdfsigner.app.services.identity import (
    IdentityAttribute,
    SERIAL_NUMBER_ATTRIBUTE,
    extract_identity,
)
from pdfsigner.tests.fixtures.cert_factory import make_certificate


@pytest.mark.parametrize(
    "subject",
    [
        "CN=Alice, SERIALNUMBER=A1",
        "CN=Alice, OID.2.5.4.5=A1",
        "CN=Alice, SN=A1",
        "cn=Alice, serialNumber=A1",
        "CN=Alice; SERIALNUMBER=A1",
        "CN=Alice\nSERIALNUMBER=A1",
        "CN=Alice\r\nSERIALNUMBER = A1 ",
        "SERIALNUMBER=A1",
    ],
)
def test_extracts_serial_identity(subject):
    assert extract_identity(subject) == "A1"


@pytest.mark.parametrize(
    "subject",
    [None, "", "CN=Alice, O=Example", "SERIALNUMBER=", "SERIALNUMBER", ",,;"],
)
def test_returns_empty_when_absent(subject):
    assert extract_identity(subject) == ""


def test_skips_empty_value_and_keeps_looking():
    assert extract_identity("SERIALNUMBER=, SN=B2") == "B2"


def test_first_match_wins():
    assert extract_identity("SERIALNUMBER=A1, SN=B2") == "A1"


def test_value_is_not_case_normalised():
    assert extract_identity("CN=x, SERIALNUMBER=PnoPL-123abc") == "PnoPL-123abc"


def test_extraction_is_idempotent():
    subject = "CN=Alice, SERIALNUMBER=A1"
    first = extract_identity(subject)
    assert extract_identity(f"SERIALNUMBER={first}") == first


def test_custom_attribute_uses_only_configured_keys():
    employee = IdentityAttribute(label="UID", keys=("UID",))

    assert extract_identity("CN=Alice, UID=emp-7", employee) == "emp-7"
    assert extract_identity("CN=Alice, SERIALNUMBER=A1", employee) == ""


def test_default_attribute_keys():
    assert SERIAL_NUMBER_ATTRIBUTE.matches(" serialnumber ")
    assert SERIAL_NUMBER_ATTRIBUTE.matches("oid.2.5.4.5")
    assert not SERIAL_NUMBER_ATTRIBUTE.matches("CN")


# ---------------------------------------------------------------------------
# Round trip through the DN renderer used for store certificates
# ---------------------------------------------------------------------------

def test_rendered_certificate_subject_is_extractable():
    cert, _ = make_certificate("Alice", "A1")
    subject = describe_name(cert.subject)

    assert subject == "SERIALNUMBER=A1, CN=Alice"
    assert extract_identity(subject) == "A1"
