from datetime import timedelta

import pytest

from chatkeeper.custody import CustodyLog
from chatkeeper.models import (
    ConfirmationStatus,
    CustodyAction,
    ExportFormat,
    Publication,
    PublicationService,
    Record,
    StorageType,
    SyncStatus,
    new_id,
    utcnow,
)
from chatkeeper.storage import Storage, StorageError


def _record(title="Meeting", **kwargs):
    return Record.create(title=title, content="Discussed roadmap", source_platform="Claude", **kwargs)


def test_insert_and_retrieve_record(storage):
    record = _record(source_url="https://example.test/c/1", export_format=ExportFormat.MARKDOWN)
    record.current_hash = "ab" * 32
    record.local_file_path = "/tmp/meeting.md"
    storage.insert_record(record)

    fetched = storage.get_record(record.id)
    assert fetched.title == "Meeting"
    assert fetched.content == "Discussed roadmap"
    assert fetched.source_url == "https://example.test/c/1"
    assert fetched.export_format is ExportFormat.MARKDOWN
    assert fetched.current_hash == "ab" * 32
    assert fetched.created_at == record.created_at
    assert fetched.entries == [] and fetched.publications == []


def test_new_record_starts_without_hash():
    record = _record()
    assert record.current_hash == ""
    assert record.created_at == record.imported_at


def test_update_record(storage):
    record = storage.insert_record(_record())
    record.current_hash = "cd" * 32
    record.cloud_storage_path = "/mirror/meeting.txt"
    storage.update_record(record)

    fetched = storage.get_record(record.id)
    assert fetched.current_hash == "cd" * 32
    assert fetched.cloud_storage_path == "/mirror/meeting.txt"


def test_missing_record_raises(storage):
    with pytest.raises(StorageError):
        storage.get_record("nope")
    with pytest.raises(StorageError):
        storage.delete_record("nope")
    with pytest.raises(StorageError):
        storage.update_record(_record())


def test_list_records_sorted_by_import_time(storage):
    now = utcnow()
    older, newer = _record("Older"), _record("Newer")
    older.imported_at = now - timedelta(days=1)
    newer.imported_at = now
    storage.insert_record(older)
    storage.insert_record(newer)

    assert [r.title for r in storage.list_records()] == ["Newer", "Older"]
    assert [r.title for r in storage.list_records(descending=False)] == ["Older", "Newer"]
    assert [r.title for r in storage.list_records(sort_by="title", descending=False)] == ["Newer", "Older"]

    with pytest.raises(ValueError):
        storage.list_records(sort_by="content; DROP TABLE records")


def test_resolve_record_id_by_prefix(storage):
    record = storage.insert_record(_record())
    assert storage.resolve_record_id(record.id[:8]) == record.id
    with pytest.raises(StorageError):
        storage.resolve_record_id("zzzz")


def test_delete_cascades_to_entries_and_publications(storage):
    custody = CustodyLog(storage)
    kept = storage.insert_record(_record("Kept"))
    doomed = storage.insert_record(_record("Doomed"))
    for record in (kept, doomed):
        custody.append(record.id, CustodyAction.IMPORTED, "imported", "00" * 32)
        storage.insert_publication(
            Publication(
                id=new_id(),
                record_id=record.id,
                service=PublicationService.CUSTOM_WEBHOOK,
                published_at=utcnow(),
                status=ConfirmationStatus.CONFIRMED,
                public_url="https://example.test/hook",
            )
        )

    storage.delete_record(doomed.id)

    assert storage.list_entries(doomed.id) == []
    assert storage.list_publications(doomed.id) == []
    with pytest.raises(StorageError):
        storage.get_record(doomed.id)
    assert len(storage.list_entries(kept.id)) == 1
    assert len(storage.list_publications(kept.id)) == 1


def test_storage_locations_are_independent_of_records(storage):
    location = storage.add_location("Archive disc", StorageType.OPTICAL_DISC, "/Volumes/DISC")
    storage.add_location("Dropbox", StorageType.DROPBOX, "/dbx", enabled=False)

    assert [loc.name for loc in storage.list_locations()] == ["Archive disc", "Dropbox"]
    assert [loc.name for loc in storage.list_locations(enabled_only=True)] == ["Archive disc"]

    location.sync_status = SyncStatus.SYNCED
    location.last_synced_at = utcnow()
    storage.update_location(location)
    fetched = storage.get_location(location.id)
    assert fetched.sync_status is SyncStatus.SYNCED
    assert fetched.last_synced_at == location.last_synced_at

    record = storage.insert_record(_record())
    storage.delete_record(record.id)
    assert len(storage.list_locations()) == 2

    storage.delete_location(location.id)
    with pytest.raises(StorageError):
        storage.get_location(location.id)


def test_uninitialisable_store_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(StorageError):
        Storage(db_path=blocker / "records.db")


def test_resolve_location_id_by_prefix(storage):
    location = storage.add_location("USB", StorageType.EXTERNAL_DRIVE, "/Volumes/USB")

    assert storage.resolve_location_id(location.id[:8]) == location.id
    with pytest.raises(StorageError):
        storage.resolve_location_id("zzzz")
