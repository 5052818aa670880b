"""FastAPI application exposing the chatkeeper record store."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config import ConfigError, load_config
from ..keeper import Keeper
from ..models import (
    ConfirmationStatus,
    CustodyAction,
    ExportFormat,
    PublicationService,
    Record,
    VerificationStatus,
)
from ..publisher import Credentials, PublicationError, RequestFailed, Unauthorized
from ..storage import StorageError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="chatkeeper API",
    description="Local chain-of-custody service for AI chat transcripts.",
    version=__version__,
)

_keeper_lock = threading.Lock()
_keeper: Optional[Keeper] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__


class EntryPayload(BaseModel):
    id: str
    record_id: str
    timestamp: datetime
    action: CustodyAction
    details: str
    file_hash: str
    storage_location: Optional[str]
    status: VerificationStatus


class PublicationPayload(BaseModel):
    id: str
    record_id: str
    service: PublicationService
    published_at: datetime
    status: ConfirmationStatus
    public_url: Optional[str] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None


class RecordSummary(BaseModel):
    id: str
    title: str
    source_platform: str
    created_at: datetime
    imported_at: datetime
    current_hash: str
    export_format: ExportFormat


class RecordPayload(RecordSummary):
    content: str
    source_url: Optional[str]
    local_file_path: Optional[str]
    cloud_storage_path: Optional[str]
    offline_backup_path: Optional[str]
    entries: List[EntryPayload] = Field(default_factory=list)
    publications: List[PublicationPayload] = Field(default_factory=list)


class ImportRequest(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    source_platform: Optional[str] = None
    source_url: Optional[str] = None
    export_format: Optional[ExportFormat] = None


class PublishRequest(BaseModel):
    service: PublicationService
    token: Optional[str] = None
    url: Optional[str] = None


class BackupRequest(BaseModel):
    mirror: bool = True
    locations: bool = False


class BackupResponse(BaseModel):
    paths: List[str]


class VerificationPayload(BaseModel):
    is_valid: bool
    stored_hash: str
    computed_hash: str
    verified_at: datetime
    message: str


def get_keeper() -> Keeper:
    global _keeper
    if _keeper is not None:
        return _keeper
    with _keeper_lock:
        if _keeper is None:
            _keeper = Keeper.from_config(load_config())
    return _keeper


def _record_to_payload(record: Record) -> RecordPayload:
    return RecordPayload(**asdict(record))


def _lookup(keeper: Keeper, record_id: str) -> Record:
    try:
        return keeper.get_record(record_id)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


def _storage_failure(exc: StorageError) -> HTTPException:
    logger.error("Record store failure: %s", exc)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


def _publication_status(exc: PublicationError) -> int:
    if isinstance(exc, RequestFailed):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, Unauthorized):
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_422_UNPROCESSABLE_ENTITY


@app.on_event("startup")
async def open_store() -> None:
    # Failing here stops the server: there is nothing to serve without the store.
    await run_in_threadpool(get_keeper)


@app.get("/health", response_model=HealthResponse)
async def healthcheck() -> HealthResponse:
    return HealthResponse()


@app.get("/records", response_model=list[RecordSummary])
async def list_records(
    sort_by: str = "imported_at",
    descending: bool = True,
    keeper: Keeper = Depends(get_keeper),
) -> list[RecordSummary]:
    try:
        records = await run_in_threadpool(keeper.list_records, sort_by, descending)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return [RecordSummary(**_summary_fields(record)) for record in records]


def _summary_fields(record: Record) -> dict:
    return {name: getattr(record, name) for name in RecordSummary.model_fields}


@app.post("/records", response_model=RecordPayload, status_code=status.HTTP_201_CREATED)
async def import_record(request: ImportRequest, keeper: Keeper = Depends(get_keeper)) -> RecordPayload:
    try:
        record = await run_in_threadpool(
            keeper.import_transcript,
            request.title,
            request.content,
            request.source_platform,
            request.source_url,
            request.export_format,
        )
    except OSError as exc:
        logger.exception("Import failed")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return _record_to_payload(record)


@app.get("/records/{record_id}", response_model=RecordPayload)
async def get_record(record_id: str, keeper: Keeper = Depends(get_keeper)) -> RecordPayload:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    return _record_to_payload(record)


@app.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(record_id: str, keeper: Keeper = Depends(get_keeper)) -> None:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    try:
        await run_in_threadpool(keeper.delete, record)
    except StorageError as exc:
        raise _storage_failure(exc) from exc


@app.get("/records/{record_id}/custody", response_model=list[EntryPayload])
async def list_custody(record_id: str, keeper: Keeper = Depends(get_keeper)) -> list[EntryPayload]:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    try:
        entries = await run_in_threadpool(keeper.custody.list_for, record.id)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return [EntryPayload(**asdict(entry)) for entry in entries]


@app.get("/records/{record_id}/report", response_class=PlainTextResponse)
async def custody_report(record_id: str, keeper: Keeper = Depends(get_keeper)) -> str:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    try:
        return await run_in_threadpool(keeper.report, record)
    except StorageError as exc:
        raise _storage_failure(exc) from exc


@app.post("/records/{record_id}/verify", response_model=VerificationPayload)
async def verify_record(record_id: str, keeper: Keeper = Depends(get_keeper)) -> VerificationPayload:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    try:
        result = await run_in_threadpool(keeper.verify, record)
    except OSError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return VerificationPayload(**asdict(result), message=result.status_message)


@app.post(
    "/records/{record_id}/publish",
    response_model=PublicationPayload,
    status_code=status.HTTP_201_CREATED,
)
async def publish_record(
    record_id: str,
    request: PublishRequest,
    keeper: Keeper = Depends(get_keeper),
) -> PublicationPayload:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    credentials = Credentials(token=request.token, url=request.url)
    try:
        publication = await run_in_threadpool(keeper.publish, record, request.service, credentials)
    except PublicationError as exc:
        raise HTTPException(status_code=_publication_status(exc), detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return PublicationPayload(**asdict(publication))


@app.post("/records/{record_id}/backup", response_model=BackupResponse)
async def backup_record(
    record_id: str,
    request: BackupRequest,
    keeper: Keeper = Depends(get_keeper),
) -> BackupResponse:
    record = await run_in_threadpool(_lookup, keeper, record_id)
    paths = []
    try:
        if request.mirror:
            paths.append(await run_in_threadpool(keeper.backup_to_mirror, record))
        if request.locations:
            paths.extend(await run_in_threadpool(keeper.backup_to_locations, record))
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return BackupResponse(paths=[str(path) for path in paths])
