"""Coordinates imports, backups, publications and verification of records."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Union

from . import config as config_mod
from .config import ConfigError
from .custody import CustodyLog
from .files import copy_file, save_transcript
from .hashing import hash_file
from .models import (
    Config,
    CustodyAction,
    ExportFormat,
    Publication,
    PublicationService,
    Record,
    StorageLocation,
    StorageType,
    SyncStatus,
    VerificationResult,
    utcnow,
)
from .publisher import Credentials, Publisher
from .storage import Storage

logger = logging.getLogger(__name__)


class Keeper:
    """Single owner of record mutations.

    Every operation that changes a record or its custody trail takes the
    keeper lock, so work finished on a background thread is applied one
    action at a time.
    """

    def __init__(
        self,
        storage: Storage,
        config: Optional[Config] = None,
        publisher: Optional[Publisher] = None,
        custody: Optional[CustodyLog] = None,
    ) -> None:
        self.storage = storage
        self.config = config or Config()
        self.publisher = publisher or Publisher()
        self.custody = custody or CustodyLog(storage)
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "Keeper":
        return cls(Storage(), config or config_mod.load_config())

    def close(self) -> None:
        self.publisher.close()

    # Records

    def import_transcript(
        self,
        title: str,
        content: str,
        source_platform: Optional[str] = None,
        source_url: Optional[str] = None,
        export_format: Union[ExportFormat, str, None] = None,
    ) -> Record:
        platform = source_platform or self.config.source_platform
        record = Record.create(
            title=title,
            content=content,
            source_platform=platform,
            source_url=source_url,
            export_format=ExportFormat(export_format or self.config.export_format),
        )
        with self._lock:
            path = save_transcript(record, config_mod.library_dir(self.config), record.export_format)
            record.local_file_path = str(path)
            record.current_hash = hash_file(path)
            self.storage.insert_record(record)
            self.custody.append(
                record.id,
                CustodyAction.IMPORTED,
                f"Transcript imported from {platform}",
                record.current_hash,
                storage_location=str(path),
            )
            self.custody.append(record.id, CustodyAction.HASHED, "SHA-256 hash computed", record.current_hash)
        logger.info("Imported record %s (%s)", record.id, record.title)
        return self.storage.get_record(record.id)

    def get_record(self, record_id: str) -> Record:
        return self.storage.get_record(self.storage.resolve_record_id(record_id))

    def list_records(self, sort_by: str = "imported_at", descending: bool = True) -> List[Record]:
        return self.storage.list_records(sort_by=sort_by, descending=descending)

    def delete(self, record: Record) -> None:
        with self._lock:
            self.storage.delete_record(record.id)

    def rehash(self, record: Record) -> Record:
        local = self._local_path(record)
        with self._lock:
            record.current_hash = hash_file(local)
            self.storage.update_record(record)
            self.custody.append(record.id, CustodyAction.HASHED, "SHA-256 hash recomputed", record.current_hash)
        return self.storage.get_record(record.id)

    # Export and backup

    def export_transcript(self, record: Record, directory: Union[str, Path]) -> Path:
        with self._lock:
            path = save_transcript(record, directory, record.export_format)
            self.custody.append(
                record.id,
                CustodyAction.EXPORTED,
                f"Exported to {path}",
                record.current_hash,
                storage_location=str(path),
            )
        return path

    def backup_to_mirror(self, record: Record) -> Path:
        directory = config_mod.mirror_dir(self.config)
        if directory is None:
            raise ConfigError("No mirror directory configured. Run `chatkeeper config --mirror-dir PATH` first.")
        with self._lock:
            path = save_transcript(record, directory, record.export_format)
            record.cloud_storage_path = str(path)
            self.storage.update_record(record)
            self.custody.append(
                record.id,
                CustodyAction.BACKED_UP,
                "Backed up to mirror directory",
                record.current_hash,
                storage_location=str(path),
            )
        return path

    def backup_to_locations(self, record: Record) -> List[Path]:
        """Copy the local transcript file into every enabled storage location.

        Stops at the first failing destination, marking it as errored; copies
        already made are kept and logged.
        """

        source = self._local_path(record)
        copied: List[Path] = []
        with self._lock:
            for location in self.storage.list_locations(enabled_only=True):
                try:
                    path = copy_file(source, location.path)
                except OSError:
                    logger.exception("Backup of record %s to %s failed", record.id, location.name)
                    self.storage.update_location(replace(location, sync_status=SyncStatus.ERROR))
                    raise
                self.storage.update_location(
                    replace(location, sync_status=SyncStatus.SYNCED, last_synced_at=utcnow())
                )
                if location.type.is_offline:
                    record.offline_backup_path = str(path)
                    self.storage.update_record(record)
                self.custody.append(
                    record.id,
                    CustodyAction.BACKED_UP,
                    f"Backed up to {location.name} ({location.type.value})",
                    record.current_hash,
                    storage_location=str(path),
                )
                copied.append(path)
        return copied

    # Publication and verification

    def publish(
        self,
        record: Record,
        service: PublicationService,
        credentials: Optional[Credentials] = None,
    ) -> Publication:
        service = PublicationService(service)
        credentials = credentials or Credentials()
        if service is PublicationService.GITHUB_GIST and not credentials.token:
            credentials = replace(credentials, token=self.config.github_token)
        if service is PublicationService.CUSTOM_WEBHOOK and not credentials.url:
            credentials = replace(credentials, url=self.config.webhook_url)

        publication = self.publisher.publish(record.current_hash, record.title, service, credentials)
        publication.record_id = record.id
        with self._lock:
            self.storage.insert_publication(publication)
            self.custody.append(
                record.id,
                CustodyAction.PUBLISHED,
                f"Hash published to {service.value}",
                record.current_hash,
                storage_location=publication.public_url,
            )
        return publication

    def verify(self, record: Record) -> VerificationResult:
        local = self._local_path(record)
        with self._lock:
            return self.custody.verify_integrity(record, local)

    def report(self, record: Record) -> str:
        return self.custody.build_report(record)

    # Storage locations

    def add_location(self, name: str, type: StorageType, path: str) -> StorageLocation:
        return self.storage.add_location(name, StorageType(type), path)

    def list_locations(self) -> List[StorageLocation]:
        return self.storage.list_locations()

    def set_location_enabled(self, location_id: str, enabled: bool) -> StorageLocation:
        with self._lock:
            location = self.storage.get_location(self.storage.resolve_location_id(location_id))
            return self.storage.update_location(replace(location, enabled=enabled))

    def remove_location(self, location_id: str) -> None:
        with self._lock:
            self.storage.delete_location(self.storage.resolve_location_id(location_id))

    @staticmethod
    def _local_path(record: Record) -> Path:
        if not record.local_file_path:
            raise FileNotFoundError(f"Record {record.id} has no local transcript file")
        return Path(record.local_file_path)
