"""Inactivity auditing: reconcile channel membership with recent activity."""

from __future__ import annotations

import enum
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional

# One audit per 23 messages on average
DEFAULT_AUDIT_PROBABILITY = 1 / 23


class RemediationMode(str, enum.Enum):
    """What happens to an inactive member once picked."""

    WARN = "warn"
    KICK = "kick"


@dataclass
class ActivityWindow:
    """Message counts per author over a trailing interval."""

    start: datetime
    end: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    counts: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def trailing(
        cls,
        duration: timedelta,
        authors: Iterable[Optional[str]] = (),
        now: Optional[datetime] = None,
    ) -> "ActivityWindow":
        end = now or datetime.now(timezone.utc)
        return cls.from_authors(end - duration, authors, end=end)

    @classmethod
    def from_authors(
        cls,
        start: datetime,
        authors: Iterable[Optional[str]],
        end: Optional[datetime] = None,
    ) -> "ActivityWindow":
        counts = Counter(author for author in authors if author)
        return cls(start=start, end=end or datetime.now(timezone.utc), counts=dict(counts))

    def count_for(self, user_id: str) -> int:
        return self.counts.get(user_id, 0)


def inactive_members(
    roster: Iterable[str],
    activity: Optional[ActivityWindow],
    exempt: Iterable[str] = (),
) -> List[str]:
    """Roster members with no messages in the window, minus exemptions."""

    skipped = set(exempt)
    candidates: List[str] = []
    for user_id in roster or ():
        if user_id in skipped:
            continue
        if activity is None or activity.count_for(user_id) == 0:
            candidates.append(user_id)
    return candidates


def audit(
    roster: Iterable[str],
    activity: Optional[ActivityWindow],
    exempt: Iterable[str] = (),
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """Pick at most one inactive member of the roster.

    Only a single member is returned per call so that an incomplete history
    can never clear out a whole channel. Missing activity data counts as zero
    messages.
    """

    candidates = inactive_members(roster, activity, exempt)
    if not candidates:
        return None
    # Rosters are sets; sort so a seeded rng gives repeatable picks
    candidates.sort()
    return (rng or random).choice(candidates)


class AuditTrigger:
    """Decide per message whether an audit should run."""

    def __init__(
        self,
        probability: float = DEFAULT_AUDIT_PROBABILITY,
        rng: Optional[random.Random] = None,
    ):
        if not 0.0 <= probability <= 1.0:
            raise ValueError("audit probability must be between 0 and 1")
        self._probability = probability
        self._rng = rng or random.Random()

    @property
    def probability(self) -> float:
        return self._probability

    def should_run(self) -> bool:
        if self._probability <= 0.0:
            return False
        return self._rng.random() < self._probability
