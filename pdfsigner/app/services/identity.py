"""
Signer identity extraction from certificate subject names.

Signatures are matched to credentials by an identity attribute that the
certificate declares in its own subject DN (by default the X.520
``serialNumber`` attribute, OID 2.5.4.5). This is an application-level
naming convention: it says nothing about whether the certificate is
trusted, and it must not be presented to callers as a trust decision.

Extraction is tolerant of the DN serializations produced by different
platforms (comma, semicolon or line-break separated; ``OID.2.5.4.5=``,
``SERIALNUMBER=`` or ``SN=`` keys) and never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

_SEPARATORS = re.compile(r"[,;\r\n]")


@dataclass(frozen=True)
class IdentityAttribute:
    """
    A DN attribute used as the signer identity.

    ``label`` is the name used in messages; ``keys`` are the spellings
    accepted when parsing a DN, compared case-insensitively.
    """

    label: str
    keys: Tuple[str, ...]

    def matches(self, key: str) -> bool:
        wanted = key.strip().casefold()
        return any(wanted == k.casefold() for k in self.keys)


SERIAL_NUMBER_ATTRIBUTE = IdentityAttribute(
    label="SERIALNUMBER",
    keys=("OID.2.5.4.5", "SERIALNUMBER", "SN"),
)


def extract_identity(
    subject_dn: Optional[str],
    attribute: IdentityAttribute = SERIAL_NUMBER_ATTRIBUTE,
) -> str:
    """
    Return the value of ``attribute`` in ``subject_dn``, or ``""``.

    The first matching token wins. Tokens without ``=`` or with an empty
    value are skipped. The value is trimmed but otherwise returned as-is.
    """
    if not subject_dn:
        return ""

    for part in _SEPARATORS.split(subject_dn):
        token = part.strip()
        key, sep, value = token.partition("=")
        if not sep or not attribute.matches(key):
            continue
        value = value.strip()
        if value:
            return value

    return ""
