"""
Certificate lookup across credential store scopes.

An identifier is either a thumbprint (hex, with optional spaces or colons)
or a subject name. Scopes are searched in order, current user first, and
each scope is opened and closed for the duration of its query only.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from pdfsigner.app.core.errors import StoreAccessError
from pdfsigner.app.schemas.results import CertificateSummary, StoreListing
from pdfsigner.app.services.cert_store import (
    CertificateStore,
    CredentialHandle,
    StoreScope,
    StoreSession,
)

logger = logging.getLogger(__name__)

_HEX = re.compile(r"[0-9A-Fa-f]{32,128}")

DEFAULT_SCOPES = (StoreScope.CURRENT_USER, StoreScope.LOCAL_MACHINE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_thumbprint(identifier: str) -> bool:
    """True if ``identifier`` is 32 to 128 hex digits once spaces and colons are removed."""
    cleaned = identifier.replace(" ", "").replace(":", "")
    return bool(_HEX.fullmatch(cleaned))


class CertificateLocator:
    def __init__(
        self,
        store: CertificateStore,
        scopes: Sequence[StoreScope] = DEFAULT_SCOPES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.scopes = tuple(scopes)
        self._clock = clock

    def find(self, identifier: Optional[str]) -> Optional[CredentialHandle]:
        """
        Return the best signing credential for ``identifier``, or ``None``.

        Within a scope a credential that has a private key and is inside
        its validity window is preferred; failing that, any credential
        with a private key is used. Credentials without a key are never
        returned. Store access errors are logged and the scope is skipped.
        """
        if not identifier or not identifier.strip():
            return None

        identifier = identifier.strip()
        by_thumbprint = is_thumbprint(identifier)

        for scope in self.scopes:
            try:
                with self.store.open(scope) as session:
                    candidates = self._search(session, identifier, by_thumbprint)
            except StoreAccessError as exc:
                logger.warning(
                    "store_access_failed",
                    extra={"scope": scope.value, "error": str(exc)},
                )
                continue

            selected = self._select(candidates)
            if selected is not None:
                logger.info(
                    "certificate_located",
                    extra={
                        "scope": scope.value,
                        "thumbprint": selected.thumbprint,
                        "subject": selected.subject,
                    },
                )
                return selected

        logger.info("certificate_not_found", extra={"identifier": identifier})
        return None

    def list_certificates(self) -> List[StoreListing]:
        listings: List[StoreListing] = []
        for scope in self.scopes:
            try:
                with self.store.open(scope) as session:
                    certificates = [
                        _summarize(c) for c in session.certificates
                    ]
            except StoreAccessError as exc:
                listings.append(
                    StoreListing(
                        scope=scope.value,
                        error=f"Error accessing certificate store: {exc}",
                    )
                )
                continue
            listings.append(
                StoreListing(scope=scope.value, certificates=certificates)
            )
        return listings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _search(
        session: StoreSession, identifier: str, by_thumbprint: bool
    ) -> List[CredentialHandle]:
        if by_thumbprint:
            return session.find_by_thumbprint(identifier)

        exact = session.find_by_subject_name(identifier)
        if exact:
            return exact
        return session.find_by_subject_fragment(identifier)

    def _select(
        self, candidates: Sequence[CredentialHandle]
    ) -> Optional[CredentialHandle]:
        now = self._clock()
        with_key = [c for c in candidates if c.has_private_key]
        for candidate in with_key:
            if candidate.is_time_valid(now):
                return candidate
        if with_key:
            logger.warning(
                "certificate_outside_validity",
                extra={
                    "thumbprint": with_key[0].thumbprint,
                    "not_after": with_key[0].not_after.isoformat(),
                },
            )
            return with_key[0]
        return None


def _summarize(credential: CredentialHandle) -> CertificateSummary:
    return CertificateSummary(
        subject=credential.subject,
        issuer=credential.issuer,
        thumbprint=credential.thumbprint,
        serial_number=credential.serial_number,
        not_before=credential.not_before.strftime("%Y-%m-%d"),
        not_after=credential.not_after.strftime("%Y-%m-%d"),
        has_private_key=credential.has_private_key,
    )
