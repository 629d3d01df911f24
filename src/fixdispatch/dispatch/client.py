"""Signed HTTP delivery of dispatch items to the automation endpoint."""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from fixdispatch.config import Settings, get_settings
from fixdispatch.db.models import DispatchItem

logger = logging.getLogger(__name__)

ENVELOPE_TYPE = "aura.fix_queue.apply"
ENVELOPE_VERSION = 1

SIGNATURE_HEADER = "x-aura-signature"
TIMESTAMP_HEADER = "x-aura-timestamp"


class DispatchConfigError(Exception):
    """Raised when delivery is impossible because of missing configuration."""


@dataclass
class DeliveryResult:
    """Outcome of a single delivery attempt."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    body: Any = None
    duration: float = 0.0


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def build_envelope(
    item: DispatchItem,
    attempt: int,
    sent_at: datetime | None = None,
) -> dict[str, Any]:
    """Wrap an item's fix action in the outbound wire format.

    Args:
        item: Item being delivered
        attempt: Attempt number this delivery represents (1-based)
        sent_at: Dispatch timestamp (defaults to now)

    Returns:
        JSON-serializable payload
    """
    return {
        "type": ENVELOPE_TYPE,
        "version": ENVELOPE_VERSION,
        "eventId": str(item.id),
        "projectId": item.project_id,
        "url": item.url,
        "field": item.field,
        "value": item.value,
        "priority": item.priority,
        "requestedBy": item.requested_by,
        "platform": item.platform,
        "externalId": item.external_id,
        "notes": item.notes,
        "createdAt": _isoformat(item.created_at),
        "attempt": attempt,
        "sentAt": _isoformat(sent_at or datetime.now(UTC)),
    }


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Serialize a payload to canonical JSON bytes (sorted keys, no whitespace)."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    """Compute the hex HMAC-SHA256 of a serialized body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def build_headers(
    body: bytes,
    settings: Settings,
    timestamp: datetime | None = None,
) -> dict[str, str]:
    """Build request headers, adding signature and API key when configured."""
    headers = {
        "content-type": "application/json",
        "user-agent": settings.dispatch_user_agent,
    }

    if settings.dispatch_signing_secret is not None:
        secret = settings.dispatch_signing_secret.get_secret_value()
        if secret:
            headers[TIMESTAMP_HEADER] = _isoformat(timestamp or datetime.now(UTC))
            headers[SIGNATURE_HEADER] = sign_payload(body, secret)

    if settings.dispatch_api_key is not None:
        api_key = settings.dispatch_api_key.get_secret_value()
        if api_key:
            headers[settings.dispatch_api_key_header] = api_key

    return headers


class DispatchClient:
    """Sends one delivery attempt per call; retries are the worker's job."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._http_client_lock = asyncio.Lock()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client used for deliveries."""
        if self._http_client is None:
            async with self._http_client_lock:
                if self._http_client is None:
                    self._http_client = httpx.AsyncClient(
                        timeout=self.settings.dispatch_timeout,
                        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                    )
                    self._owns_client = True
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def deliver(self, payload: dict[str, Any]) -> DeliveryResult:
        """POST a payload to the configured endpoint.

        Args:
            payload: Delivery envelope (see build_envelope)

        Returns:
            DeliveryResult describing success or the classified failure

        Raises:
            DispatchConfigError: If no endpoint URL is configured
        """
        url = self.settings.dispatch_endpoint_url
        if not url:
            raise DispatchConfigError("Dispatch endpoint URL is not configured")

        body = serialize_payload(payload)
        headers = build_headers(body, self.settings)
        request_timeout = self.settings.dispatch_timeout

        start_time = time.perf_counter()
        try:
            # httpx timeouts apply per phase; the deadline caps the whole exchange
            async with asyncio.timeout(request_timeout):
                client = await self._get_http_client()
                response = await client.post(
                    url,
                    content=body,
                    headers=headers,
                    timeout=request_timeout,
                )
        except (httpx.TimeoutException, TimeoutError):
            return DeliveryResult(
                success=False,
                error=f"Request timed out after {request_timeout:g}s",
                duration=time.perf_counter() - start_time,
            )
        except httpx.ConnectError as e:
            return DeliveryResult(
                success=False,
                error=f"Connection error: {e}",
                duration=time.perf_counter() - start_time,
            )
        except httpx.HTTPError as e:
            return DeliveryResult(
                success=False,
                error=f"HTTP error: {e}",
                duration=time.perf_counter() - start_time,
            )
        except Exception as e:
            logger.exception(f"Unexpected error delivering to {url}")
            return DeliveryResult(
                success=False,
                error=f"Unexpected error: {e}",
                duration=time.perf_counter() - start_time,
            )

        duration = time.perf_counter() - start_time

        if response.is_success:
            try:
                response_body: Any = response.json()
            except ValueError:
                response_body = response.text
            return DeliveryResult(
                success=True,
                status_code=response.status_code,
                body=response_body,
                duration=duration,
            )

        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:500]}",
            body=response.text,
            duration=duration,
        )
