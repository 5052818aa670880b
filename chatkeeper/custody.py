"""Chain-of-custody log: append-only audit entries per record."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .hashing import hash_file, verify_hash
from .models import (
    AuditEntry,
    CustodyAction,
    Publication,
    Record,
    VerificationResult,
    VerificationStatus,
    new_id,
    utcnow,
)
from .storage import Storage

logger = logging.getLogger(__name__)

HEAVY_RULE = "═" * 59
LIGHT_RULE = "─" * 59

VERIFIED_DETAILS = "File integrity verified - hash matches"
MODIFIED_DETAILS = "ALERT: File integrity compromised - hash mismatch"


def format_timestamp(value: datetime) -> str:
    return value.strftime("%b %d, %Y %H:%M:%S %Z").strip()


class CustodyLog:
    """Record and inspect the custody trail of transcripts."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def append(
        self,
        record_id: str,
        action: CustodyAction,
        details: str,
        file_hash: str,
        storage_location: Optional[str] = None,
        status: VerificationStatus = VerificationStatus.VERIFIED,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=new_id(),
            record_id=record_id,
            timestamp=utcnow(),
            action=CustodyAction(action),
            details=details,
            file_hash=file_hash,
            storage_location=storage_location,
            status=VerificationStatus(status),
        )
        self.storage.insert_entry(entry)
        logger.info("Custody entry %s for record %s: %s", entry.action.value, record_id, details)
        return entry

    def list_for(self, record_id: str) -> List[AuditEntry]:
        return self.storage.list_entries(record_id)

    def build_report(self, record: Record, generated_at: Optional[datetime] = None) -> str:
        entries = self.list_for(record.id)
        publications = self.storage.list_publications(record.id)
        return render_report(record, entries, publications, generated_at or utcnow())

    def verify_integrity(self, record: Record, current_file_path: Union[str, Path]) -> VerificationResult:
        """Re-hash ``current_file_path`` and compare it to ``record.current_hash``.

        One ``Verified`` or ``Modified`` entry is appended per call. When the
        file cannot be read the ``OSError`` propagates and nothing is logged
        to the custody trail.
        """

        path = Path(current_file_path)
        computed = hash_file(path)
        stored = record.current_hash
        is_valid = verify_hash(computed, stored)

        if is_valid:
            action, details = CustodyAction.VERIFIED, VERIFIED_DETAILS
        else:
            action, details = CustodyAction.MODIFIED, MODIFIED_DETAILS
            logger.warning("Integrity mismatch for record %s: stored %s, computed %s", record.id, stored, computed)

        self.append(record.id, action, details, computed, storage_location=str(path))
        return VerificationResult(
            is_valid=is_valid,
            stored_hash=stored,
            computed_hash=computed,
            verified_at=utcnow(),
        )


def render_report(
    record: Record,
    entries: Sequence[AuditEntry],
    publications: Sequence[Publication],
    generated_at: datetime,
) -> str:
    lines = [
        HEAVY_RULE,
        "CHAIN OF CUSTODY REPORT",
        HEAVY_RULE,
        "",
        f"Transcript: {record.title}",
        f"Transcript ID: {record.id}",
        f"Platform: {record.source_platform}",
        f"Created: {format_timestamp(record.created_at)}",
        f"Current Hash: {record.current_hash}",
        "",
        LIGHT_RULE,
        "CUSTODY HISTORY",
        LIGHT_RULE,
        "",
    ]

    for index, entry in enumerate(entries, start=1):
        lines += [
            "",
            f"[{index}] {entry.action.value}",
            f"Timestamp: {format_timestamp(entry.timestamp)}",
            f"Hash: {entry.file_hash}",
            f"Status: {entry.status.value}",
            f"Details: {entry.details}",
        ]
        if entry.storage_location:
            lines.append(f"Location: {entry.storage_location}")

    lines += ["", LIGHT_RULE, "HASH PUBLICATIONS", LIGHT_RULE, ""]

    for index, publication in enumerate(publications, start=1):
        lines += [
            "",
            f"[{index}] {publication.service.value}",
            f"Published: {format_timestamp(publication.published_at)}",
            f"Status: {publication.status.value}",
        ]
        if publication.public_url:
            lines.append(f"URL: {publication.public_url}")
        if publication.transaction_id:
            lines.append(f"Transaction ID: {publication.transaction_id}")

    lines += [
        "",
        HEAVY_RULE,
        "END OF REPORT",
        f"Generated: {format_timestamp(generated_at)}",
        HEAVY_RULE,
    ]
    return "\n".join(lines) + "\n"
