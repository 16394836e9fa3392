"""Object graph wiring for YellCop."""

from __future__ import annotations

import logging
import random
from typing import Optional

from .models.config import BotSettings
from .services.dispatcher import AuditSettings, EventDispatcher
from .services.inactivity import AuditTrigger
from .services.moderation import ModerationPolicy
from .services.roster import RosterCache
from .services.slack_api import SlackAPIError, SlackClient
from .webhook import WebhookHandler

logger = logging.getLogger(__name__)


def create_handler(
    settings: BotSettings,
    slack: SlackClient,
    bot_user_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> WebhookHandler:
    rng = rng or random.Random()
    policy = ModerationPolicy(
        skip_phrases=settings.skip_phrases,
        threshold=settings.threshold,
        warn_templates=settings.warnings,
        kick_templates=settings.failures,
        rng=rng,
    )
    dispatcher = EventDispatcher(
        slack=slack,
        policy=policy,
        roster=RosterCache(slack.list_members, ttl=settings.roster_ttl),
        trigger=AuditTrigger(settings.audit_probability, rng=rng),
        audit_settings=AuditSettings(
            window=settings.inactivity,
            mode=settings.inactivity_action,
            templates=settings.inactivity_templates,
        ),
        welcome_template=settings.welcome,
        dry_run=settings.dry_run,
        bot_user_id=bot_user_id,
        rng=rng,
    )
    return WebhookHandler(dispatcher, verification_token=settings.verification_token)


async def resolve_bot_user(slack: SlackClient) -> Optional[str]:
    """User ID behind the bot token, so the bot never audits itself."""

    try:
        identity = await slack.auth_test()
    except SlackAPIError:
        logger.exception("Failed to resolve bot identity; continuing without it")
        return None
    user_id = identity.get("user_id")
    logger.info("Authenticated as %s (%s)", identity.get("user"), user_id)
    return user_id
