"""Entry-point for running the YellCop webhook server."""

from __future__ import annotations

import asyncio
import logging

from yellcop.bot import create_handler, resolve_bot_user
from yellcop.models.config import load_settings
from yellcop.services.slack_api import SlackClient
from yellcop.webhook import start_webhook_server


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # Request-level chatter from httpx drowns out moderation decisions
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def async_main() -> None:
    settings = load_settings()
    configure_logging(settings.verbose)
    logger = logging.getLogger(__name__)

    slack = SlackClient(
        bot_token=settings.slack_bot_token,
        user_token=settings.slack_user_token,
        base_url=settings.slack_api_url,
    )
    if not settings.slack_user_token:
        logger.warning("No SLACK_USER_TOKEN set - kicks will use the bot token")
    if settings.dry_run:
        logger.warning("Dry-run enabled - no messages will be posted and nobody will be kicked")

    bot_user_id = await resolve_bot_user(slack)
    handler = create_handler(settings, slack, bot_user_id=bot_user_id)
    server = await start_webhook_server(
        settings.webhook_host,
        settings.webhook_port,
        handler,
        settings_summary={
            "threshold": settings.threshold,
            "remediation": settings.inactivity_action.value,
        },
    )
    logger.info("Listening for Slack events on %s:%d", settings.webhook_host, settings.webhook_port)
    try:
        async with server:
            await server.serve_forever()
    finally:
        await slack.close()


def main() -> None:
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
