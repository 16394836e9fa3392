"""Slack Web API helpers for YellCop."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://slack.com/api/"
PAGE_LIMIT = 200
DEFAULT_MAX_PAGES = 50


class SlackUnavailable(RuntimeError):
    """Raised when a Slack request is made without a token."""


class SlackAPIError(RuntimeError):
    """Raised when Slack rejects a request or cannot be reached."""

    def __init__(self, method: str, error: str):
        super().__init__(f"{method}: {error}")
        self.method = method
        self.error = error


class SlackClient:
    """Thin async wrapper around the handful of Slack methods the bot needs.

    Posting and reading use the bot token. Removing members from a channel
    requires a user token with admin scopes; when none is configured the bot
    token is used instead.
    """

    def __init__(
        self,
        bot_token: Optional[str],
        user_token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        max_pages: int = DEFAULT_MAX_PAGES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bot_token = bot_token
        self._user_token = user_token or bot_token
        self._max_pages = max_pages
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    def is_configured(self) -> bool:
        return bool(self._bot_token)

    async def close(self) -> None:
        await self._client.aclose()

    async def auth_test(self) -> Dict[str, Any]:
        """Identity of the bot token, including its ``user_id``."""

        return await self._call("auth.test", {})

    async def post_message(self, channel: str, text: str) -> Dict[str, Any]:
        return await self._call("chat.postMessage", {"channel": channel, "text": text})

    async def post_ephemeral(self, channel: str, user: str, text: str) -> Dict[str, Any]:
        return await self._call(
            "chat.postEphemeral", {"channel": channel, "user": user, "text": text}
        )

    async def kick(self, channel: str, user: str) -> Dict[str, Any]:
        return await self._call(
            "conversations.kick", {"channel": channel, "user": user}, token=self._user_token
        )

    async def user_info(self, user: str) -> Dict[str, Any]:
        payload = await self._call("users.info", {"user": user})
        return payload.get("user") or {}

    async def list_members(self, channel: str) -> List[str]:
        """Every member of a channel, following pagination to the end."""

        members: List[str] = []
        for page in await self._paginate("conversations.members", {"channel": channel}):
            members.extend(page.get("members") or [])
        logger.info("Fetched %d member(s) of channel %s", len(members), channel)
        return members

    async def fetch_history(self, channel: str, oldest: datetime) -> List[Optional[str]]:
        """Authors of every message posted to ``channel`` since ``oldest``.

        Thread replies are included by walking ``conversations.replies`` for
        every parent that has replies. The listing must be complete: running
        out of page budget raises instead of returning a truncated history.
        """

        since = f"{oldest.timestamp():.6f}"
        authors: List[Optional[str]] = []
        threads: List[str] = []
        pages = await self._paginate(
            "conversations.history", {"channel": channel, "oldest": since}, strict=True
        )
        for page in pages:
            for message in page.get("messages") or []:
                authors.append(message.get("user"))
                if message.get("reply_count") and message.get("ts"):
                    threads.append(message["ts"])

        for thread_ts in threads:
            replies = await self._paginate(
                "conversations.replies",
                {"channel": channel, "ts": thread_ts, "oldest": since},
                strict=True,
            )
            for page in replies:
                authors.extend(
                    reply.get("user")
                    for reply in page.get("messages") or []
                    # the parent heads every page of a thread listing
                    if reply.get("ts") != thread_ts
                )

        logger.info(
            "Fetched %d message(s) in channel %s since %s (%d thread(s))",
            len(authors),
            channel,
            oldest.isoformat(),
            len(threads),
        )
        return authors

    async def _paginate(
        self, method: str, params: Dict[str, Any], strict: bool = False
    ) -> List[Dict[str, Any]]:
        """Collect cursor-paginated pages.

        Stops when Slack returns an empty cursor or after ``max_pages``. A
        failure on any page raises and the pages gathered so far are dropped,
        so callers never mistake a partial listing for a complete one. With
        ``strict`` set, exhausting the page budget raises as well.
        """

        pages: List[Dict[str, Any]] = []
        cursor = ""
        while len(pages) < self._max_pages:
            request = dict(params, limit=PAGE_LIMIT)
            if cursor:
                request["cursor"] = cursor
            payload = await self._call(method, request)
            pages.append(payload)
            cursor = (payload.get("response_metadata") or {}).get("next_cursor") or ""
            if not cursor:
                return pages
        if strict:
            raise SlackAPIError(method, f"page budget exhausted after {len(pages)} page(s)")
        logger.warning("Stopped paginating %s after %d page(s)", method, len(pages))
        return pages

    async def _call(
        self, method: str, data: Dict[str, Any], token: Optional[str] = None
    ) -> Dict[str, Any]:
        token = token or self._bot_token
        if not token:
            raise SlackUnavailable("Slack token not configured. Set SLACK_BOT_TOKEN before starting.")

        try:
            response = await self._client.post(
                method, data=data, headers={"Authorization": f"Bearer {token}"}
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise SlackAPIError(method, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SlackAPIError(method, str(exc) or exc.__class__.__name__) from exc
        except ValueError as exc:
            raise SlackAPIError(method, "invalid JSON response") from exc

        if not payload.get("ok"):
            raise SlackAPIError(method, payload.get("error", "unknown_error"))
        return payload
