"""Capitalisation policy that turns message text into a verdict."""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Optional, Sequence

from ..utils.slack import is_yelling

logger = logging.getLogger(__name__)


class VerdictKind(enum.IntEnum):
    """Outcome of a single message, ordered by severity."""

    NONE = 0
    WARN = 1
    KICK = 2


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    template: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.kind is not VerdictKind.NONE


NO_ACTION = Verdict(VerdictKind.NONE)


def count_quiet_tokens(text: str) -> int:
    """Number of whitespace-delimited tokens that are not shouted."""

    return sum(1 for token in text.split() if not is_yelling(token))


def evaluate(
    text: str,
    skip_phrases: Sequence[str],
    threshold: int,
    warn_templates: Sequence[str],
    kick_templates: Sequence[str],
    rng: Optional[random.Random] = None,
) -> Verdict:
    """Classify a message and pick a response template.

    Messages containing any skip phrase are Slack system notices and are never
    moderated. Otherwise every quiet token counts against the author: more
    than ``threshold`` of them is a kick, anything above zero is a warning.
    """

    if any(phrase in text for phrase in skip_phrases):
        return NO_ACTION

    chooser = rng or random
    count = count_quiet_tokens(text)
    if count > threshold:
        return Verdict(VerdictKind.KICK, chooser.choice(kick_templates))
    if count > 0:
        return Verdict(VerdictKind.WARN, chooser.choice(warn_templates))
    return NO_ACTION


class ModerationPolicy:
    """Moderation rules bound to the configured thresholds and templates."""

    def __init__(
        self,
        skip_phrases: Sequence[str],
        threshold: int,
        warn_templates: Sequence[str],
        kick_templates: Sequence[str],
        rng: Optional[random.Random] = None,
    ):
        if threshold < 0:
            raise ValueError("threshold must be zero or greater")
        if not warn_templates or not kick_templates:
            raise ValueError("warn and kick templates must not be empty")
        self._skip_phrases = tuple(skip_phrases)
        self._threshold = threshold
        self._warn_templates = tuple(warn_templates)
        self._kick_templates = tuple(kick_templates)
        self._rng = rng or random.Random()

    @property
    def threshold(self) -> int:
        return self._threshold

    def evaluate(self, text: str) -> Verdict:
        verdict = evaluate(
            text,
            self._skip_phrases,
            self._threshold,
            self._warn_templates,
            self._kick_templates,
            rng=self._rng,
        )
        logger.debug("Verdict %s for %d quiet token(s)", verdict.kind.name, count_quiet_tokens(text))
        return verdict
