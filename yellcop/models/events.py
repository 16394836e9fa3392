"""Inbound Slack Events API payloads."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError


class EventDecodeError(ValueError):
    """Base class for payloads that cannot be turned into an event."""


class MalformedPayload(EventDecodeError):
    """The payload is not a valid Slack event envelope."""


class UnsupportedEvent(EventDecodeError):
    """The payload is well formed but of a kind the bot does not handle."""

    def __init__(self, kind: str):
        super().__init__(f"missing type implementation: {kind}")
        self.kind = kind


class MessageEvent(BaseModel):
    """A message posted to a conversation."""

    type: Literal["message"] = "message"
    channel: str
    user: Optional[str] = None
    text: str = ""
    ts: Optional[str] = None
    channel_type: Optional[str] = None
    subtype: Optional[str] = None
    bot_id: Optional[str] = None


class MemberJoinedEvent(BaseModel):
    """A user joined a conversation."""

    type: Literal["member_joined_channel"] = "member_joined_channel"
    user: str
    channel: str
    channel_type: Optional[str] = None
    inviter: Optional[str] = None


CallbackPayload = Annotated[Union[MessageEvent, MemberJoinedEvent], Field(discriminator="type")]


class UrlVerification(BaseModel):
    """Handshake sent by Slack when the request URL is configured."""

    type: Literal["url_verification"] = "url_verification"
    challenge: str
    token: Optional[str] = None


class IgnoredEvent(BaseModel):
    """A well formed callback whose inner event the bot does not act on."""

    type: Literal["ignored"] = "ignored"
    kind: str
    event_id: Optional[str] = None


class EventCallback(BaseModel):
    """Envelope wrapping exactly one inner event."""

    type: Literal["event_callback"] = "event_callback"
    event: CallbackPayload
    token: Optional[str] = None
    team_id: Optional[str] = None
    event_id: Optional[str] = None


InboundEvent = Union[UrlVerification, EventCallback, IgnoredEvent]

_INNER_EVENT_TYPES = {"message", "member_joined_channel"}


def decode_event(payload: Any) -> InboundEvent:
    """Validate a decoded JSON body into one of the supported event types.

    Callbacks carrying an inner event of any other type decode to an
    ``IgnoredEvent`` so they can be acknowledged without being handled.

    Raises:
        MalformedPayload: when the body is not an object or fails validation.
        UnsupportedEvent: when the outer ``type`` tag is unknown.
    """

    if not isinstance(payload, Mapping):
        raise MalformedPayload("payload must be a JSON object")

    kind = payload.get("type")
    if not kind:
        raise MalformedPayload("payload has no type")

    if kind == "url_verification":
        model = UrlVerification
    elif kind == "event_callback":
        inner = payload.get("event")
        if not isinstance(inner, Mapping):
            raise MalformedPayload("event_callback without an event object")
        inner_kind = inner.get("type")
        if inner_kind not in _INNER_EVENT_TYPES:
            event_id = payload.get("event_id")
            return IgnoredEvent(
                kind=f"{kind}/{inner_kind or 'unknown'}",
                event_id=event_id if isinstance(event_id, str) else None,
            )
        model = EventCallback
    else:
        raise UnsupportedEvent(str(kind))

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedPayload(str(exc)) from exc


def event_token(payload: Any) -> Optional[str]:
    """Verification token carried by a raw payload, if any."""

    if isinstance(payload, Mapping):
        token = payload.get("token")
        return token if isinstance(token, str) else None
    return None
