"""
Credential store access.

A credential store is split into named scopes (current user, local
machine). Each scope is opened as a read-only session, queried, and
closed again; sessions are context managers so the handle is released on
every exit path, including errors.

Two stores are provided:

- ``DirectoryCertificateStore`` maps each scope to a directory of
  PKCS#12 (``.p12``/``.pfx``) and PEM/DER (``.pem``/``.crt``/``.cer``/
  ``.der``) files. A PEM file may carry its private key inline, or the
  key may live in a sibling ``<stem>.key`` file.
- ``InMemoryCertificateStore`` holds pre-built credentials and tracks
  open sessions.
"""

from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import (
    ContextManager,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from pdfsigner.app.core.errors import (
    PrivateKeyUnavailable,
    StoreAccessError,
    UnsupportedKeyAlgorithm,
)

logger = logging.getLogger(__name__)

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

_PKCS12_SUFFIXES = {".p12", ".pfx"}
_CERT_SUFFIXES = {".pem", ".crt", ".cer", ".der"}

_NAME_LABELS = {
    NameOID.SERIAL_NUMBER: "SERIALNUMBER",
    NameOID.EMAIL_ADDRESS: "E",
}

_HASHES = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


class StoreScope(str, Enum):
    CURRENT_USER = "current_user"
    LOCAL_MACHINE = "local_machine"


class KeyAlgorithm(str, Enum):
    RSA = "RSA"
    EC = "EC"
    UNSUPPORTED = "UNSUPPORTED"


def describe_name(name: x509.Name) -> str:
    """
    Render a DN in RFC 4514 order with ``", "`` separators.

    OID 2.5.4.5 is rendered as ``SERIALNUMBER`` so identity extraction can
    read it back.
    """
    return ", ".join(
        rdn.rfc4514_string(_NAME_LABELS) for rdn in reversed(name.rdns)
    )


def _key_algorithm(cert: x509.Certificate) -> KeyAlgorithm:
    public_key = cert.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        return KeyAlgorithm.RSA
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return KeyAlgorithm.EC
    return KeyAlgorithm.UNSUPPORTED


# ---------------------------------------------------------------------------
# Credential handle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CredentialHandle:
    """
    A certificate from the store, with its private key if one is available.

    Handles are created by store sessions and are immutable, so a single
    resolved handle can be shared across a whole batch.
    """

    subject: str
    issuer: str
    serial_number: str
    thumbprint: str
    thumbprint_sha256: str
    not_before: datetime
    not_after: datetime
    key_algorithm: KeyAlgorithm
    raw: bytes = field(repr=False)
    chain: Tuple[bytes, ...] = field(default=(), repr=False)
    scope: Optional[StoreScope] = None
    private_key: Optional[PrivateKey] = field(
        default=None, repr=False, compare=False
    )

    @classmethod
    def from_certificate(
        cls,
        cert: x509.Certificate,
        private_key: Optional[PrivateKey] = None,
        chain: Iterable[x509.Certificate] = (),
        scope: Optional[StoreScope] = None,
    ) -> "CredentialHandle":
        der = cert.public_bytes(serialization.Encoding.DER)
        return cls(
            subject=describe_name(cert.subject),
            issuer=describe_name(cert.issuer),
            serial_number=format(cert.serial_number, "X"),
            thumbprint=hashlib.sha1(der).hexdigest().upper(),
            thumbprint_sha256=hashlib.sha256(der).hexdigest().upper(),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            key_algorithm=_key_algorithm(cert),
            raw=der,
            chain=tuple(
                c.public_bytes(serialization.Encoding.DER) for c in chain
            ),
            scope=scope,
            private_key=private_key,
        )

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def is_time_valid(self, at: Optional[datetime] = None) -> bool:
        at = at or datetime.now(timezone.utc)
        return self.not_before <= at <= self.not_after

    def sign(self, data: bytes, digest_algorithm: str = "sha256") -> bytes:
        """
        Produce a raw signature over ``data``.

        RSA keys sign with PKCS#1 v1.5 padding, EC keys with ECDSA.
        """
        if self.private_key is None:
            raise PrivateKeyUnavailable(
                f"Certificate {self.thumbprint} has no private key"
            )

        hash_cls = _HASHES.get(digest_algorithm.lower())
        if hash_cls is None:
            raise ValueError(
                f"Unsupported digest algorithm: {digest_algorithm}"
            )

        key = self.private_key
        if isinstance(key, rsa.RSAPrivateKey):
            return key.sign(data, padding.PKCS1v15(), hash_cls())
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return key.sign(data, ec.ECDSA(hash_cls()))
        raise UnsupportedKeyAlgorithm(
            f"Unsupported private key algorithm: {type(key).__name__}"
        )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def _dn_components(dn: str) -> List[str]:
    parts = [p.strip() for p in dn.replace(";", ",").split(",")]
    return [" ".join(p.split()).casefold() for p in parts if p]


class StoreSession:
    """Read-only view of one opened store scope."""

    def __init__(
        self, scope: StoreScope, certificates: Sequence[CredentialHandle]
    ) -> None:
        self.scope = scope
        self._certificates = tuple(certificates)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def certificates(self) -> Tuple[CredentialHandle, ...]:
        self._ensure_open()
        return self._certificates

    def find_by_thumbprint(self, thumbprint: str) -> List[CredentialHandle]:
        wanted = thumbprint.replace(" ", "").replace(":", "").upper()
        return [
            c for c in self.certificates
            if wanted in (c.thumbprint, c.thumbprint_sha256)
        ]

    def find_by_subject_name(self, subject: str) -> List[CredentialHandle]:
        wanted = _dn_components(subject)
        if not wanted:
            return []
        matches = []
        for cert in self.certificates:
            have = _dn_components(cert.subject)
            if have == wanted or have == list(reversed(wanted)):
                matches.append(cert)
        return matches

    def find_by_subject_fragment(
        self, fragment: str
    ) -> List[CredentialHandle]:
        wanted = fragment.strip().casefold()
        if not wanted:
            return []
        return [
            c for c in self.certificates if wanted in c.subject.casefold()
        ]

    def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreAccessError(f"Store scope {self.scope.value} is closed")


class CertificateStore(Protocol):
    def open(self, scope: StoreScope) -> ContextManager[StoreSession]:
        ...


# ---------------------------------------------------------------------------
# Directory-backed store
# ---------------------------------------------------------------------------

class DirectoryCertificateStore:
    """
    Credential store backed by one directory per scope.

    Files that cannot be parsed are skipped with a warning; a missing
    scope directory is an empty scope.
    """

    def __init__(
        self,
        directories: Mapping[StoreScope, Path],
        passphrase: Optional[bytes] = None,
    ) -> None:
        self._directories = dict(directories)
        self._passphrase = passphrase

    @contextmanager
    def open(self, scope: StoreScope) -> Iterator[StoreSession]:
        session = StoreSession(scope, self._load(scope))
        logger.debug("store_opened", extra={"scope": scope.value})
        try:
            yield session
        finally:
            session.close()
            logger.debug("store_closed", extra={"scope": scope.value})

    def _load(self, scope: StoreScope) -> List[CredentialHandle]:
        directory = self._directories.get(scope)
        if directory is None or not directory.exists():
            return []
        if not directory.is_dir():
            raise StoreAccessError(
                f"Store location for {scope.value} is not a directory: "
                f"{directory}"
            )

        try:
            paths = sorted(p for p in directory.iterdir() if p.is_file())
        except OSError as exc:
            raise StoreAccessError(
                f"Error accessing certificate store {scope.value}: {exc}"
            ) from exc

        credentials: List[CredentialHandle] = []
        for path in paths:
            suffix = path.suffix.lower()
            if suffix not in _PKCS12_SUFFIXES | _CERT_SUFFIXES:
                continue
            try:
                if suffix in _PKCS12_SUFFIXES:
                    handle = self._load_pkcs12(path, scope)
                else:
                    handle = self._load_certificate_file(path, scope)
            except (ValueError, TypeError, OSError) as exc:
                logger.warning(
                    "Skipping unreadable store entry %s: %s", path, exc
                )
                continue
            if handle is not None:
                credentials.append(handle)

        return credentials

    def _load_pkcs12(
        self, path: Path, scope: StoreScope
    ) -> Optional[CredentialHandle]:
        key, cert, extra = pkcs12.load_key_and_certificates(
            path.read_bytes(), self._passphrase
        )
        if cert is None:
            return None
        return CredentialHandle.from_certificate(
            cert, private_key=key, chain=extra or (), scope=scope
        )

    def _load_certificate_file(
        self, path: Path, scope: StoreScope
    ) -> Optional[CredentialHandle]:
        data = path.read_bytes()
        if b"-----BEGIN" in data:
            certs = x509.load_pem_x509_certificates(data)
        else:
            certs = [x509.load_der_x509_certificate(data)]

        key = None
        if b"PRIVATE KEY-----" in data:
            key = serialization.load_pem_private_key(data, self._passphrase)
        else:
            key_path = path.with_suffix(".key")
            if key_path.is_file():
                key = serialization.load_pem_private_key(
                    key_path.read_bytes(), self._passphrase
                )

        return CredentialHandle.from_certificate(
            certs[0], private_key=key, chain=certs[1:], scope=scope
        )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryCertificateStore:
    """
    Credential store over pre-built handles.

    ``open_sessions`` counts sessions that have been opened and not yet
    closed; it returns to zero once every ``open()`` block has exited.
    """

    def __init__(
        self,
        scopes: Optional[Mapping[StoreScope, Sequence[CredentialHandle]]] = None,
    ) -> None:
        self._scopes: Dict[StoreScope, List[CredentialHandle]] = {
            scope: list(certs) for scope, certs in (scopes or {}).items()
        }
        self.open_sessions = 0
        self.opened: List[StoreScope] = []

    @contextmanager
    def open(self, scope: StoreScope) -> Iterator[StoreSession]:
        session = StoreSession(scope, self._scopes.get(scope, ()))
        self.open_sessions += 1
        self.opened.append(scope)
        try:
            yield session
        finally:
            session.close()
            self.open_sessions -= 1
