"""Routes decoded Slack events to the moderation policy, greetings and audits."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from ..models.events import EventCallback, MemberJoinedEvent, MessageEvent
from ..utils.slack import render_template
from .inactivity import ActivityWindow, AuditTrigger, RemediationMode, audit
from .moderation import ModerationPolicy, VerdictKind
from .roster import RosterCache
from .slack_api import SlackAPIError, SlackClient

logger = logging.getLogger(__name__)

MODERATED_CHANNEL_TYPES = frozenset({"channel"})


@dataclass
class AuditSettings:
    """Knobs for the inactivity audit."""

    window: timedelta
    mode: RemediationMode
    templates: Sequence[str]


class EventDispatcher:
    """Single entry-point for callback events.

    Every outbound Slack call is best effort: failures are logged and never
    bubble up to the webhook, which always acknowledges the event.
    """

    def __init__(
        self,
        slack: SlackClient,
        policy: ModerationPolicy,
        roster: RosterCache,
        trigger: AuditTrigger,
        audit_settings: AuditSettings,
        welcome_template: str,
        dry_run: bool = False,
        bot_user_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._slack = slack
        self._policy = policy
        self._roster = roster
        self._trigger = trigger
        self._audit = audit_settings
        self._welcome = welcome_template
        self._dry_run = dry_run
        self._bot_user_id = bot_user_id
        self._rng = rng or random.Random()
        self._clock = clock

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def roster(self) -> RosterCache:
        return self._roster

    async def handle(self, callback: EventCallback) -> None:
        event = callback.event
        if isinstance(event, MessageEvent):
            await self.handle_message(event)
        elif isinstance(event, MemberJoinedEvent):
            await self.handle_member_join(event)
        else:  # pragma: no cover - the union is closed
            raise TypeError(f"unhandled event type: {type(event).__name__}")

    async def handle_message(self, message: MessageEvent) -> None:
        logger.debug(
            "%s (type=%s, user=%s)", message.text, message.channel_type, message.user
        )
        if message.channel_type not in MODERATED_CHANNEL_TYPES:
            return
        if not message.user or message.bot_id or message.user == self._bot_user_id:
            return

        verdict = self._policy.evaluate(message.text)
        if verdict.kind is VerdictKind.KICK:
            await self._kick_user(message.channel, message.user, verdict.template)
        elif verdict.kind is VerdictKind.WARN:
            await self._post_message(message.channel, message.user, verdict.template)

        if self._trigger.should_run():
            await self.run_audit(message.channel)

    async def handle_member_join(self, event: MemberJoinedEvent) -> None:
        logger.info("Member %s joined channel %s", event.user, event.channel)
        await self._post_message(event.channel, event.user, self._welcome, ephemeral=True)

    async def run_audit(self, channel: str) -> Optional[str]:
        """Look for one member without recent messages and remediate.

        Returns the user that was picked, or None when the audit found nobody
        or could not gather complete data.
        """

        now = self._clock()
        start = now - self._audit.window
        try:
            members = await self._roster.get(channel)
        except SlackAPIError:
            logger.exception("Failed to fetch roster for channel %s; skipping audit", channel)
            return None

        try:
            authors = await self._slack.fetch_history(channel, start)
        except SlackAPIError:
            logger.exception("Failed to fetch history for channel %s; skipping audit", channel)
            return None

        activity = ActivityWindow.from_authors(start, authors, end=now)
        exempt = [self._bot_user_id] if self._bot_user_id else []
        candidate = audit(members, activity, exempt=exempt, rng=self._rng)
        if candidate is None:
            logger.info("Audit of channel %s found no inactive members", channel)
            return None

        try:
            info = await self._slack.user_info(candidate)
        except SlackAPIError:
            logger.exception("Failed to get user info for %s", candidate)
            return None
        if info.get("is_bot") or info.get("deleted"):
            logger.info("Ignoring history for bot or deactivated user %s", candidate)
            return None

        logger.warning(
            "Checked history: %s has no messages in channel %s since %s",
            candidate,
            channel,
            start.isoformat(),
        )
        template = self._rng.choice(list(self._audit.templates))
        if self._audit.mode is RemediationMode.KICK:
            await self._kick_user(channel, candidate, template)
        else:
            await self._post_message(channel, candidate, template)
        return candidate

    async def _kick_user(self, channel: str, user: str, template: str) -> None:
        logger.info("Kicking %s from channel %s", user, channel)
        if self._dry_run:
            logger.info("[DRY-RUN] Would kick %s from channel %s", user, channel)
        else:
            try:
                await self._slack.kick(channel, user)
            except SlackAPIError:
                logger.exception("Failed to kick %s from channel %s", user, channel)
                return
            await self._roster.invalidate(channel)
        await self._post_message(channel, user, template)

    async def _post_message(
        self, channel: str, user: str, template: str, ephemeral: bool = False
    ) -> None:
        text = render_template(template, user)
        if self._dry_run:
            logger.info("[DRY-RUN] Would post to channel %s: %s", channel, text)
            return
        try:
            if ephemeral:
                await self._slack.post_ephemeral(channel, user, text)
            else:
                await self._slack.post_message(channel, text)
        except SlackAPIError:
            logger.exception("Failed to post to channel %s", channel)
