"""Webhook endpoint for the Slack Events API, plus a health check."""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .models.events import (
    IgnoredEvent,
    MalformedPayload,
    UnsupportedEvent,
    UrlVerification,
    decode_event,
    event_token,
)
from .services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

EVENT_PATHS = {"/", "/slack/events"}
HEALTH_PATHS = {"/health", "/healthz"}
MAX_BODY_BYTES = 1024 * 1024
RETRY_HEADER = "x-slack-retry-num"
SEEN_EVENT_LIMIT = 1000

_REASONS = {
    200: "OK",
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
}

CORS_HEADERS = {
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "OPTIONS,POST,GET,PUT",
    "Access-Control-Allow-Origin": "*",
}


@dataclass
class WebhookResponse:
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    def to_dict(self) -> Dict[str, Any]:
        """Function-URL style response mapping."""

        return {
            "isBase64Encoded": False,
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": self.body,
        }


class WebhookHandler:
    """Turns one HTTP request into one response, dispatching callbacks.

    Slack redelivers a callback when it is not acknowledged within three
    seconds. Redeliveries (marked with ``X-Slack-Retry-Num``) and callbacks
    whose ``event_id`` was already handled are acknowledged without being
    dispatched again, so a slow audit never produces a second warning.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        verification_token: Optional[str] = None,
        seen_limit: int = SEEN_EVENT_LIMIT,
    ):
        self._dispatcher = dispatcher
        self._verification_token = verification_token
        self._seen_limit = seen_limit
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    async def handle_request(
        self, method: str, body: str, headers: Optional[Mapping[str, str]] = None
    ) -> WebhookResponse:
        if method.upper() != "POST":
            return WebhookResponse(405, "method not allowed")

        try:
            payload = json.loads(body)
        except ValueError as exc:
            logger.warning("Error unmarshalling payload: %s", exc)
            return WebhookResponse(400, f"failed to parse body: {exc}")

        if not self._token_matches(event_token(payload)):
            logger.warning("Rejected event with invalid verification token")
            return WebhookResponse(401, "invalid verification token")

        try:
            event = decode_event(payload)
        except MalformedPayload as exc:
            logger.warning("Error parsing event: %s", exc)
            return WebhookResponse(400, f"failed to parse body: {exc}")
        except UnsupportedEvent as exc:
            logger.info("Missing type implementation: %s", exc.kind)
            return WebhookResponse(501, str(exc))

        if isinstance(event, UrlVerification):
            logger.info("URL verification successful")
            return WebhookResponse(200, event.challenge)

        if isinstance(event, IgnoredEvent):
            logger.debug("Ignoring %s", event.kind)
            return WebhookResponse(200, "ok")

        retry = _header(headers, RETRY_HEADER)
        if retry is not None:
            logger.info("Acknowledging redelivery %s of event %s", retry, event.event_id)
            return WebhookResponse(200, "ok")

        if not self._first_delivery(event.event_id):
            logger.info("Skipping duplicate event %s", event.event_id)
            return WebhookResponse(200, "ok")

        await self._dispatcher.handle(event)
        return WebhookResponse(200, "ok")

    def _first_delivery(self, event_id: Optional[str]) -> bool:
        if not event_id:
            return True
        if event_id in self._seen:
            return False
        self._seen[event_id] = None
        while len(self._seen) > self._seen_limit:
            self._seen.popitem(last=False)
        return True

    def _token_matches(self, token: Optional[str]) -> bool:
        if not self._verification_token:
            return True
        return token is not None and hmac.compare_digest(token, self._verification_token)


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return None


async def _write_response(
    writer: asyncio.StreamWriter,
    status: int,
    body: bytes = b"",
    content_type: str = "text/plain; charset=utf-8",
) -> None:
    head = (
        f"HTTP/1.1 {status} {_REASONS.get(status, 'Unknown')}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    writer.write(head.encode() + body)
    await writer.drain()
    writer.close()
    await writer.wait_closed()


def _health_payload(handler: WebhookHandler, settings_summary: Dict[str, Any]) -> bytes:
    payload = {
        "status": "ok",
        "dry_run": handler.dispatcher.dry_run,
        "cached_members": handler.dispatcher.roster.size(),
        **settings_summary,
    }
    return json.dumps(payload).encode()


async def _handle_client(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    handler: WebhookHandler,
    settings_summary: Dict[str, Any],
) -> None:
    try:
        data = await reader.readuntil(b"\r\n\r\n")
    except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
        writer.close()
        await writer.wait_closed()
        return

    head = data.decode(errors="ignore")
    request_line, _, header_block = head.partition("\r\n")
    method, path, *_ = request_line.split(" ") + ["", ""]
    path = path.split("?", 1)[0]

    headers: Dict[str, str] = {}
    for line in header_block.split("\r\n"):
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()

    if method.upper() == "GET" and path in HEALTH_PATHS:
        body = _health_payload(handler, settings_summary)
        await _write_response(writer, 200, body, content_type="application/json")
        return

    if path not in EVENT_PATHS:
        await _write_response(writer, 404)
        return

    try:
        length = int(headers.get("content-length", "0"))
    except ValueError:
        length = -1
    if length < 0 or length > MAX_BODY_BYTES:
        await _write_response(writer, 413 if length > 0 else 400)
        return

    try:
        raw = await reader.readexactly(length) if length else b""
    except asyncio.IncompleteReadError:
        writer.close()
        await writer.wait_closed()
        return

    try:
        response = await handler.handle_request(
            method, raw.decode("utf-8", errors="replace"), headers
        )
    except Exception:
        logger.exception("Unhandled error while processing %s %s", method, path)
        response = WebhookResponse(500, "internal error")

    await _write_response(writer, response.status_code, response.body.encode())


async def start_webhook_server(
    host: str,
    port: int,
    handler: WebhookHandler,
    settings_summary: Optional[Dict[str, Any]] = None,
) -> asyncio.AbstractServer:
    summary = dict(settings_summary or {})
    server = await asyncio.start_server(
        lambda r, w: _handle_client(r, w, handler, summary),
        host,
        port,
    )
    return server
