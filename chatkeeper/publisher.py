"""Publish transcript hashes to external notarization services."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from .hashing import hex_to_bytes, is_sha256_hex
from .models import ConfirmationStatus, Publication, PublicationService, new_id, utcnow

logger = logging.getLogger(__name__)

GIST_ENDPOINT = "https://api.github.com/gists"
TIMESTAMP_ENDPOINT = "https://opentimestamps.org/api/v1/timestamp"
GIST_FILENAME = "transcript_hash.txt"
HASH_ALGORITHM = "SHA-256"

GIST_TEMPLATE = """# AI Chat Transcript Hash
Title: {title}
SHA-256: {hash}
Timestamp: {timestamp}

This hash cryptographically proves the existence and content of an AI chat transcript at this timestamp.
"""


class PublicationError(RuntimeError):
    """Base class for failures while publishing a hash."""

    message = "Failed to publish hash"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(f"{self.message}: {detail}" if detail else self.message)
        self.detail = detail


class RequestFailed(PublicationError):
    message = "Failed to publish hash to the service"


class InvalidHash(PublicationError):
    message = "Invalid hash format"


class InvalidURL(PublicationError):
    message = "Invalid URL provided"


class Unauthorized(PublicationError):
    message = "Unauthorized - check your credentials"


class UnsupportedService(PublicationError):
    message = "Publishing to this service is not supported"


@dataclass(slots=True)
class Credentials:
    """Per-service secrets: a bearer token for gists, a URL for webhooks."""

    token: Optional[str] = None
    url: Optional[str] = None


def iso_timestamp(value: Optional[datetime] = None) -> str:
    return (value or utcnow()).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_webhook_url(value: Optional[str]) -> httpx.URL:
    if not value:
        raise InvalidURL("no webhook URL configured")
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise InvalidURL(value) from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURL(value)
    return url


class Publisher:
    """Send a digest to one notarization service per call.

    There are no retries and no timeout overrides; a failed request surfaces
    as a :class:`PublicationError`. The returned :class:`Publication` carries
    an empty ``record_id`` which the caller rebinds to its record.
    """

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client()
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "Publisher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def publish(
        self,
        file_hash: str,
        title: str,
        service: PublicationService,
        credentials: Optional[Credentials] = None,
    ) -> Publication:
        service = PublicationService(service)
        credentials = credentials or Credentials()
        if not is_sha256_hex(file_hash):
            raise InvalidHash(repr(file_hash))

        logger.info("Publishing hash %s to %s", file_hash, service.value)
        if service is PublicationService.GITHUB_GIST:
            return self.publish_gist(file_hash, title, credentials.token)
        if service is PublicationService.OPEN_TIMESTAMPS:
            return self.publish_timestamp(file_hash)
        if service is PublicationService.CUSTOM_WEBHOOK:
            return self.publish_webhook(file_hash, title, credentials.url)
        raise UnsupportedService(service.value)

    def publish_gist(self, file_hash: str, title: str, token: Optional[str]) -> Publication:
        if not token:
            raise Unauthorized("a GitHub token is required")
        payload = {
            "description": f"AI Chat Transcript Hash - {title}",
            "public": True,
            "files": {
                GIST_FILENAME: {
                    "content": GIST_TEMPLATE.format(title=title, hash=file_hash, timestamp=iso_timestamp()),
                }
            },
        }
        response = self._post(
            GIST_ENDPOINT,
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/vnd.github+json"},
        )
        if response.status_code in (401, 403):
            raise Unauthorized(f"{response.status_code} from {GIST_ENDPOINT}")
        _ensure_success(response)

        body = _json_body(response)
        return _publication(
            PublicationService.GITHUB_GIST,
            ConfirmationStatus.CONFIRMED,
            public_url=body.get("html_url"),
        )

    def publish_timestamp(self, file_hash: str) -> Publication:
        try:
            digest = hex_to_bytes(file_hash)
        except ValueError as exc:
            raise InvalidHash(str(exc)) from exc
        response = self._post(
            TIMESTAMP_ENDPOINT,
            content=digest,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        _ensure_success(response)
        # Confirmation needs the proof to land in a Bitcoin block; nothing polls for it.
        return _publication(
            PublicationService.OPEN_TIMESTAMPS,
            ConfirmationStatus.PENDING,
            transaction_id=base64.b64encode(response.content).decode("ascii"),
        )

    def publish_webhook(self, file_hash: str, title: str, webhook_url: Optional[str]) -> Publication:
        url = parse_webhook_url(webhook_url)
        payload = {
            "title": title,
            "hash": file_hash,
            "timestamp": iso_timestamp(),
            "algorithm": HASH_ALGORITHM,
        }
        response = self._post(url, json=payload)
        _ensure_success(response)
        return _publication(
            PublicationService.CUSTOM_WEBHOOK,
            ConfirmationStatus.CONFIRMED,
            public_url=str(webhook_url),
        )

    def _post(self, url: Any, **kwargs: Any) -> httpx.Response:
        try:
            return self.client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", url, exc)
            raise RequestFailed(str(exc)) from exc


def _ensure_success(response: httpx.Response) -> None:
    if not response.is_success:
        logger.error("Publication endpoint %s returned %s", response.request.url, response.status_code)
        raise RequestFailed(f"{response.status_code} from {response.request.url}")


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _publication(
    service: PublicationService,
    status: ConfirmationStatus,
    public_url: Optional[str] = None,
    transaction_id: Optional[str] = None,
) -> Publication:
    return Publication(
        id=new_id(),
        record_id="",
        service=service,
        published_at=utcnow(),
        status=status,
        public_url=public_url,
        transaction_id=transaction_id,
    )
