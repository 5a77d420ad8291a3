"""
payout_services.webhooks -- Signature verification for transfer-service events.

Responsibility:
    Verify the ``t=<unix>,v1=<hex>`` signature header of an inbound
    webhook and parse the verified body into a ``WebhookEvent``.  Nothing
    here touches the database; the orchestrator applies the event.

Architecture position:
    Services -- inbound boundary of the payout orchestrator.

Invariants enforced:
    - The signature is HMAC-SHA256 over ``"<t>.<raw body>"`` with the
      shared secret, compared in constant time.
    - Timestamps older or newer than the tolerance are rejected, so a
      captured delivery cannot be replayed later.
    - A missing secret rejects every event.  There is no unsigned mode.

Failure modes:
    - WebhookVerificationError: bad header, bad signature, stale timestamp,
      missing secret, or a body that is not a JSON event object.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import WebhookVerificationError
from payout_kernel.logging_config import get_logger

logger = get_logger("services.webhooks")

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300

TOPUP_SUCCEEDED = "topup.succeeded"
TOPUP_FAILED = "topup.failed"
SUPPORTED_EVENTS = frozenset({TOPUP_SUCCEEDED, TOPUP_FAILED})


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    created: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def failure_message(self) -> str | None:
        obj = self.data.get("object", self.data)
        if not isinstance(obj, dict):
            return None
        return obj.get("failure_message") or obj.get("failure_code")


def _unix_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def compute_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign_payload(secret: str, timestamp: int, payload: bytes | str) -> str:
    """Build a signature header for ``payload`` (used by senders and tests)."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return f"t={timestamp},{SIGNATURE_SCHEME}={compute_signature(secret, timestamp, payload)}"


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookVerificationError("timestamp is not an integer") from None
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if timestamp is None:
        raise WebhookVerificationError("signature header has no timestamp")
    if not signatures:
        raise WebhookVerificationError(f"signature header has no {SIGNATURE_SCHEME} signature")
    return timestamp, signatures


class WebhookVerifier:
    """Verifies and parses transfer-service webhook deliveries."""

    def __init__(
        self,
        secret: str | None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Clock | None = None,
    ):
        self._secret = secret
        self._tolerance = tolerance_seconds
        self._clock = clock or SystemClock()

    def verify(self, payload: bytes | str, signature_header: str | None) -> WebhookEvent:
        """Return the parsed event, or raise WebhookVerificationError."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        try:
            if not self._secret:
                raise WebhookVerificationError("no webhook secret configured")
            if not signature_header:
                raise WebhookVerificationError("missing signature header")

            timestamp, signatures = _parse_header(signature_header)
            expected = compute_signature(self._secret, timestamp, payload)
            if not any(hmac.compare_digest(expected, sig) for sig in signatures):
                raise WebhookVerificationError("signature mismatch")

            age = _unix_seconds(self._clock.now()) - timestamp
            if self._tolerance and abs(age) > self._tolerance:
                raise WebhookVerificationError(
                    f"timestamp outside tolerance ({age}s, limit {self._tolerance}s)"
                )

            return self._parse(payload)
        except WebhookVerificationError as exc:
            logger.warning("webhook_rejected", extra={"reason": exc.reason})
            raise

    @staticmethod
    def _parse(payload: bytes) -> WebhookEvent:
        try:
            body = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise WebhookVerificationError(f"body is not valid JSON: {exc}") from exc
        if not isinstance(body, dict) or "id" not in body or "type" not in body:
            raise WebhookVerificationError("body is not an event object")
        return WebhookEvent(
            event_id=str(body["id"]),
            event_type=str(body["type"]),
            created=body.get("created"),
            data=body.get("data") or {},
            raw=body,
        )
