"""Dataclasses describing persistent objects for chatkeeper."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ExportFormat(str, Enum):
    PLAINTEXT = "plaintext"
    PDF = "pdf"
    MARKDOWN = "markdown"


class CustodyAction(str, Enum):
    IMPORTED = "Imported"
    EXPORTED = "Exported"
    HASHED = "Hashed"
    PUBLISHED = "Published"
    BACKED_UP = "Backed Up"
    VERIFIED = "Verified"
    MODIFIED = "Modified"


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    # Reserved for manual flagging; nothing assigns it yet.
    TAMPERED = "tampered"


class PublicationService(str, Enum):
    GITHUB_GIST = "GitHub Gist"
    EMAIL = "Email"
    OPEN_TIMESTAMPS = "OpenTimestamps"
    BITCOIN_OP_RETURN = "Bitcoin OP_RETURN"
    CUSTOM_WEBHOOK = "Custom Webhook"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class StorageType(str, Enum):
    LOCAL = "Local"
    ICLOUD_DRIVE = "iCloud Drive"
    DROPBOX = "Dropbox"
    GOOGLE_DRIVE = "Google Drive"
    EXTERNAL_DRIVE = "External Drive"
    OPTICAL_DISC = "Optical Disc"

    @property
    def is_offline(self) -> bool:
        return self in (StorageType.EXTERNAL_DRIVE, StorageType.OPTICAL_DISC)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One immutable chain-of-custody line for a record."""

    id: str
    record_id: str
    timestamp: datetime
    action: CustodyAction
    details: str
    file_hash: str
    storage_location: Optional[str]
    status: VerificationStatus


@dataclass(slots=True)
class Publication:
    """Proof-of-existence submission of a record hash."""

    id: str
    record_id: str
    service: PublicationService
    published_at: datetime
    status: ConfirmationStatus
    public_url: Optional[str] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(slots=True)
class Record:
    """A stored chat transcript together with its custody trail."""

    id: str
    title: str
    content: str
    source_platform: str
    created_at: datetime
    imported_at: datetime
    source_url: Optional[str] = None
    current_hash: str = ""
    export_format: ExportFormat = ExportFormat.PLAINTEXT
    local_file_path: Optional[str] = None
    cloud_storage_path: Optional[str] = None
    offline_backup_path: Optional[str] = None
    publications: List[Publication] = field(default_factory=list)
    entries: List[AuditEntry] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        title: str,
        content: str,
        source_platform: str,
        source_url: Optional[str] = None,
        export_format: ExportFormat = ExportFormat.PLAINTEXT,
    ) -> "Record":
        now = utcnow()
        return cls(
            id=new_id(),
            title=title,
            content=content,
            source_platform=source_platform,
            source_url=source_url,
            created_at=now,
            imported_at=now,
            export_format=ExportFormat(export_format),
        )


@dataclass(slots=True)
class StorageLocation:
    """A backup destination. Shared configuration, not owned by any record."""

    id: str
    name: str
    type: StorageType
    path: str
    enabled: bool = True
    last_synced_at: Optional[datetime] = None
    sync_status: SyncStatus = SyncStatus.IDLE


@dataclass(frozen=True, slots=True)
class VerificationResult:
    is_valid: bool
    stored_hash: str
    computed_hash: str
    verified_at: datetime

    @property
    def status_message(self) -> str:
        if self.is_valid:
            return "File integrity verified"
        return "WARNING: File has been modified or corrupted"


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    library_dir: Optional[str] = None
    mirror_dir: Optional[str] = None
    export_format: str = ExportFormat.PLAINTEXT.value
    source_platform: str = "ChatGPT"
    github_token: Optional[str] = None
    webhook_url: Optional[str] = None
    log_level: str = "WARNING"
