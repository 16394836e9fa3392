"""Slack-specific text utilities."""

from __future__ import annotations

import html
import re

# Slack emoji shortcodes, e.g. ``:smile:`` or ``:+1::skin-tone-2:``
EMOJI_RE = re.compile(r"\:[^:\s]+\:")

# Bare links are case sensitive, so they never count against the author
URL_RE = re.compile(r"https?://\w+")

USER_PLACEHOLDER = "{user}"


def is_yelling(token: str) -> bool:
    """Decide whether a single whitespace-delimited token is shouted.

    Emoji shortcodes are removed first since they are never evidence either
    way. Tokens containing a link are exempt. Slack escapes ``&``, ``<`` and
    ``>`` in message text, so entities are decoded before the case check.

    Args:
        token: One word of a message.

    Returns:
        True when the token contains no lowercase letters.

    Examples:
        >>> is_yelling("HELLO")
        True
        >>> is_yelling("hello:smile:")
        False
        >>> is_yelling("&gt;ELL")
        True
    """
    text = EMOJI_RE.sub("", token)
    if URL_RE.search(text):
        return True
    text = html.unescape(text)
    return text.upper() == text


def render_template(template: str, user_id: str) -> str:
    """Fill the user placeholder and shout the result."""

    return template.replace(USER_PLACEHOLDER, user_id).upper()
