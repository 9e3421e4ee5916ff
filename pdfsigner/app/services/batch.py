"""
Batch signing of every PDF matching a file pattern.

The credential is resolved once and shared by every file. Each file is
signed (and optionally verified) independently: a failure is recorded
against that file and the batch moves on.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import List, Optional

from pdfsigner.app.core.errors import CredentialNotFound, DirectoryNotFound
from pdfsigner.app.schemas.results import BatchEntry, BatchResult, BatchStatus
from pdfsigner.app.services.cert_store import CredentialHandle
from pdfsigner.app.services.identity import (
    IdentityAttribute,
    SERIAL_NUMBER_ATTRIBUTE,
)
from pdfsigner.app.services.locator import CertificateLocator
from pdfsigner.app.services.pdf_signer import sign_document
from pdfsigner.app.services.verification import verify_signed_by

logger = logging.getLogger(__name__)

_DEFAULT_SEARCH = "*.pdf"


def resolve_input_files(pattern: str) -> List[Path]:
    """
    Expand ``pattern`` into the PDF files it names.

    An existing file is returned as-is. Otherwise the directory part of
    the pattern (or the working directory) is searched, top level only,
    for ``.pdf`` files whose names match the last component
    case-insensitively. A pattern without an extension gets ``*.pdf``
    appended, so ``docs/report`` finds ``docs/report*.pdf``.

    Raises:
        DirectoryNotFound: the directory part does not exist.
    """
    candidate = Path(pattern)
    if candidate.is_file():
        return [candidate]

    if pattern.endswith(("/", os.sep)):
        directory, search = candidate, _DEFAULT_SEARCH
    else:
        directory, search = candidate.parent, candidate.name or _DEFAULT_SEARCH
    if "." not in search:
        search = f"{search}{_DEFAULT_SEARCH}"

    if not directory.is_dir():
        raise DirectoryNotFound(f"Directory not found: {directory}")

    wanted = search.lower()
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file()
        and path.suffix.lower() == ".pdf"
        and fnmatch.fnmatchcase(path.name.lower(), wanted)
    )


def output_path_for(source: Path, output_dir: Path, suffix: str) -> Path:
    return output_dir / f"{source.stem}{suffix}{source.suffix}"


class BatchOrchestrator:
    def __init__(
        self,
        locator: CertificateLocator,
        attribute: IdentityAttribute = SERIAL_NUMBER_ATTRIBUTE,
        require_whole_document: bool = False,
    ) -> None:
        self.locator = locator
        self.attribute = attribute
        self.require_whole_document = require_whole_document

    def run(
        self,
        pattern: str,
        output_dir: Path,
        identifier: str,
        *,
        reason: str,
        location: Optional[str] = None,
        suffix: str = "-sig",
        verify: bool = True,
    ) -> BatchResult:
        """
        Sign every file matching ``pattern`` into ``output_dir``.

        Raises only for setup failures (credential not found, directory
        not found). Per-file failures are reported in the result.
        """
        credential = self.locator.find(identifier)
        if credential is None:
            raise CredentialNotFound(identifier)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        files = resolve_input_files(pattern)
        logger.info(
            "batch_started",
            extra={
                "pattern": pattern,
                "file_count": len(files),
                "output_directory": str(output_dir),
            },
        )

        entries = [
            self._process(
                source,
                output_path_for(source, output_dir, suffix),
                credential,
                reason=reason,
                location=location,
                verify=verify,
            )
            for source in files
        ]
        result = BatchResult(output_directory=output_dir, entries=entries)

        logger.info(
            "batch_completed",
            extra={
                "success_count": result.success_count,
                "failure_count": result.failure_count,
            },
        )
        return result

    def _process(
        self,
        source: Path,
        target: Path,
        credential: CredentialHandle,
        *,
        reason: str,
        location: Optional[str],
        verify: bool,
    ) -> BatchEntry:
        try:
            field_name = sign_document(
                input_pdf=source,
                output_pdf=target,
                credential=credential,
                reason=reason,
                location=location,
            )
        except Exception as exc:
            logger.warning(
                "batch_file_failed",
                extra={"input": str(source), "error": str(exc)},
            )
            return BatchEntry(
                input_path=source,
                output_path=target,
                status=BatchStatus.FAILED,
                detail=str(exc),
            )

        if not verify:
            return BatchEntry(
                input_path=source, output_path=target, status=BatchStatus.SIGNED
            )

        try:
            verify_signed_by(
                target,
                credential,
                attribute=self.attribute,
                require_whole_document=self.require_whole_document,
                field_name=field_name,
            )
        except Exception as exc:
            logger.warning(
                "batch_verification_failed",
                extra={"output": str(target), "error": str(exc)},
            )
            return BatchEntry(
                input_path=source,
                output_path=target,
                status=BatchStatus.SIGNED_VERIFICATION_FAILED,
                detail=str(exc),
            )

        return BatchEntry(
            input_path=source,
            output_path=target,
            status=BatchStatus.SIGNED_AND_VERIFIED,
        )
