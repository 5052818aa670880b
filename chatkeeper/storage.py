"""SQLite backed persistence for chatkeeper records."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .models import (
    AuditEntry,
    ConfirmationStatus,
    CustodyAction,
    ExportFormat,
    Publication,
    PublicationService,
    Record,
    StorageLocation,
    StorageType,
    SyncStatus,
    VerificationStatus,
    new_id,
)

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / ".chatkeeper"
DB_PATH = APP_DIR / "records.db"
SCHEMA_VERSION = 1

SORT_COLUMNS = ("imported_at", "created_at", "title")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        source_platform TEXT NOT NULL,
        source_url TEXT,
        created_at TEXT NOT NULL,
        imported_at TEXT NOT NULL,
        current_hash TEXT NOT NULL,
        export_format TEXT NOT NULL,
        local_file_path TEXT,
        cloud_storage_path TEXT,
        offline_backup_path TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_entries (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        record_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        details TEXT NOT NULL,
        file_hash TEXT NOT NULL,
        storage_location TEXT,
        status TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_entries_record ON audit_entries(record_id, timestamp)",
    """
    CREATE TABLE IF NOT EXISTS publications (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        record_id TEXT NOT NULL,
        service TEXT NOT NULL,
        published_at TEXT NOT NULL,
        public_url TEXT,
        transaction_id TEXT,
        status TEXT NOT NULL,
        error_message TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_publications_record ON publications(record_id)",
    """
    CREATE TABLE IF NOT EXISTS storage_locations (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        path TEXT NOT NULL,
        enabled INTEGER NOT NULL,
        last_synced_at TEXT,
        sync_status TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)


class StorageError(RuntimeError):
    """Raised when something goes wrong while accessing the storage."""


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Storage:
    """Manage persistence of records, custody entries and publications."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path or DB_PATH)
        self._ensure_initialised()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Database error on %s: %s", self.db_path, exc)
            raise StorageError(f"Database error: {exc}") from exc
        finally:
            conn.close()

    def _ensure_initialised(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create storage directory {self.db_path.parent}: {exc}") from exc
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            cur = conn.execute("SELECT value FROM metadata WHERE key = ?", ("schema_version",))
            row = cur.fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO metadata(key, value) VALUES(?, ?)",
                    ("schema_version", str(SCHEMA_VERSION)),
                )

    # Records

    def insert_record(self, record: Record) -> Record:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO records(
                    id, title, content, source_platform, source_url, created_at, imported_at,
                    current_hash, export_format, local_file_path, cloud_storage_path, offline_backup_path
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.title,
                    record.content,
                    record.source_platform,
                    record.source_url,
                    _ts(record.created_at),
                    _ts(record.imported_at),
                    record.current_hash,
                    record.export_format.value,
                    record.local_file_path,
                    record.cloud_storage_path,
                    record.offline_backup_path,
                ),
            )
        logger.debug("Inserted record %s", record.id)
        return record

    def update_record(self, record: Record) -> Record:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE records SET title = ?, current_hash = ?, export_format = ?,
                    local_file_path = ?, cloud_storage_path = ?, offline_backup_path = ?
                WHERE id = ?
                """,
                (
                    record.title,
                    record.current_hash,
                    record.export_format.value,
                    record.local_file_path,
                    record.cloud_storage_path,
                    record.offline_backup_path,
                    record.id,
                ),
            )
            if cur.rowcount == 0:
                raise StorageError(f"Record with id {record.id} not found")
        return record

    def get_record(self, record_id: str) -> Record:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                raise StorageError(f"Record with id {record_id} not found")
            return self._hydrate(conn, row)

    def resolve_record_id(self, prefix: str) -> str:
        """Expand a unique id prefix to the full record id."""

        return self._resolve_id("records", "Record", prefix)

    def _resolve_id(self, table: str, label: str, prefix: str) -> str:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id FROM {table} WHERE id LIKE ? ESCAPE '\\' LIMIT 2",
                (prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%",),
            ).fetchall()
        if not rows:
            raise StorageError(f"{label} with id {prefix} not found")
        if len(rows) > 1:
            raise StorageError(f"{label} id prefix {prefix} is ambiguous")
        return rows[0]["id"]

    def list_records(self, sort_by: str = "imported_at", descending: bool = True) -> List[Record]:
        if sort_by not in SORT_COLUMNS:
            raise ValueError(f"Cannot sort records by {sort_by!r}; expected one of {', '.join(SORT_COLUMNS)}")
        direction = "DESC" if descending else "ASC"
        with self._connect() as conn:
            rows = conn.execute(f"SELECT * FROM records ORDER BY {sort_by} {direction}, seq {direction}").fetchall()
            return [self._hydrate(conn, row) for row in rows]

    def delete_record(self, record_id: str) -> None:
        """Delete a record together with its custody entries and publications."""

        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM records WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                raise StorageError(f"Record with id {record_id} not found")
            entries = conn.execute("DELETE FROM audit_entries WHERE record_id = ?", (record_id,)).rowcount
            publications = conn.execute("DELETE FROM publications WHERE record_id = ?", (record_id,)).rowcount
            conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
        logger.info(
            "Deleted record %s with %d custody entries and %d publications", record_id, entries, publications
        )

    def _hydrate(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Record:
        record = _row_to_record(row)
        record.entries = [
            _row_to_entry(r)
            for r in conn.execute(
                "SELECT * FROM audit_entries WHERE record_id = ? ORDER BY timestamp ASC, seq ASC",
                (record.id,),
            )
        ]
        record.publications = [
            _row_to_publication(r)
            for r in conn.execute(
                "SELECT * FROM publications WHERE record_id = ? ORDER BY published_at ASC, seq ASC",
                (record.id,),
            )
        ]
        return record

    # Custody entries

    def insert_entry(self, entry: AuditEntry) -> AuditEntry:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO audit_entries(id, record_id, timestamp, action, details, file_hash, storage_location, status)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.record_id,
                    _ts(entry.timestamp),
                    entry.action.value,
                    entry.details,
                    entry.file_hash,
                    entry.storage_location,
                    entry.status.value,
                ),
            )
        return entry

    def list_entries(self, record_id: str) -> List[AuditEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_entries WHERE record_id = ? ORDER BY timestamp ASC, seq ASC",
                (record_id,),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    # Publications

    def insert_publication(self, publication: Publication) -> Publication:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO publications(
                    id, record_id, service, published_at, public_url, transaction_id, status, error_message
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    publication.id,
                    publication.record_id,
                    publication.service.value,
                    _ts(publication.published_at),
                    publication.public_url,
                    publication.transaction_id,
                    publication.status.value,
                    publication.error_message,
                ),
            )
        return publication

    def list_publications(self, record_id: str) -> List[Publication]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM publications WHERE record_id = ? ORDER BY published_at ASC, seq ASC",
                (record_id,),
            ).fetchall()
        return [_row_to_publication(row) for row in rows]

    # Storage locations

    def add_location(
        self,
        name: str,
        type: StorageType,
        path: str,
        enabled: bool = True,
    ) -> StorageLocation:
        location = StorageLocation(id=new_id(), name=name, type=StorageType(type), path=path, enabled=enabled)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO storage_locations(id, name, type, path, enabled, last_synced_at, sync_status)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    location.id,
                    location.name,
                    location.type.value,
                    location.path,
                    int(location.enabled),
                    None,
                    location.sync_status.value,
                ),
            )
        return location

    def resolve_location_id(self, prefix: str) -> str:
        return self._resolve_id("storage_locations", "Storage location", prefix)

    def get_location(self, location_id: str) -> StorageLocation:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM storage_locations WHERE id = ?", (location_id,)).fetchone()
        if row is None:
            raise StorageError(f"Storage location with id {location_id} not found")
        return _row_to_location(row)

    def list_locations(self, enabled_only: bool = False) -> List[StorageLocation]:
        query = "SELECT * FROM storage_locations"
        if enabled_only:
            query += " WHERE enabled = 1"
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY seq ASC").fetchall()
        return [_row_to_location(row) for row in rows]

    def update_location(self, location: StorageLocation) -> StorageLocation:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE storage_locations SET name = ?, type = ?, path = ?, enabled = ?,
                    last_synced_at = ?, sync_status = ?
                WHERE id = ?
                """,
                (
                    location.name,
                    location.type.value,
                    location.path,
                    int(location.enabled),
                    _ts(location.last_synced_at),
                    location.sync_status.value,
                    location.id,
                ),
            )
            if cur.rowcount == 0:
                raise StorageError(f"Storage location with id {location.id} not found")
        return location

    def delete_location(self, location_id: str) -> None:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM storage_locations WHERE id = ?", (location_id,))
            if cur.rowcount == 0:
                raise StorageError(f"Storage location with id {location_id} not found")


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        source_platform=row["source_platform"],
        source_url=row["source_url"],
        created_at=_parse_ts(row["created_at"]),
        imported_at=_parse_ts(row["imported_at"]),
        current_hash=row["current_hash"],
        export_format=ExportFormat(row["export_format"]),
        local_file_path=row["local_file_path"],
        cloud_storage_path=row["cloud_storage_path"],
        offline_backup_path=row["offline_backup_path"],
    )


def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        record_id=row["record_id"],
        timestamp=_parse_ts(row["timestamp"]),
        action=CustodyAction(row["action"]),
        details=row["details"],
        file_hash=row["file_hash"],
        storage_location=row["storage_location"],
        status=VerificationStatus(row["status"]),
    )


def _row_to_publication(row: sqlite3.Row) -> Publication:
    return Publication(
        id=row["id"],
        record_id=row["record_id"],
        service=PublicationService(row["service"]),
        published_at=_parse_ts(row["published_at"]),
        public_url=row["public_url"],
        transaction_id=row["transaction_id"],
        status=ConfirmationStatus(row["status"]),
        error_message=row["error_message"],
    )


def _row_to_location(row: sqlite3.Row) -> StorageLocation:
    return StorageLocation(
        id=row["id"],
        name=row["name"],
        type=StorageType(row["type"]),
        path=row["path"],
        enabled=bool(row["enabled"]),
        last_synced_at=_parse_ts(row["last_synced_at"]),
        sync_status=SyncStatus(row["sync_status"]),
    )
