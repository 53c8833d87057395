"""
stipend.engine.activities — Activity Definitions & Catalog
===========================================================

An :class:`Activity` is a named, rewardable action with a fixed reward and
an availability policy.  The :class:`ActivityCatalog` is built once at
startup and handed to the evaluator and processor; it is never mutated.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

__all__ = [
    "DEFAULT_ACTIVITIES",
    "Activity",
    "ActivityCatalog",
    "AvailabilityPolicy",
]


class AvailabilityPolicy(enum.StrEnum):
    """How often an activity may be claimed."""
    ONCE = "once"
    DAILY = "daily"
    CONDITIONAL = "conditional"


@dataclass(frozen=True, slots=True)
class Activity:
    """Immutable activity definition."""

    id: str
    name: str
    reward: int
    policy: AvailabilityPolicy

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "reward": self.reward,
            "policy": self.policy.value,
        }


# ---------------------------------------------------------------------------
# Built-in activities (used when config.yaml declares none)
# ---------------------------------------------------------------------------
DEFAULT_ACTIVITIES: tuple[Activity, ...] = (
    Activity("welcome", "Welcome bonus", 10, AvailabilityPolicy.ONCE),
    Activity("daily_login", "Daily Login Bonus", 5, AvailabilityPolicy.DAILY),
    Activity("referral", "Referral bonus", 20, AvailabilityPolicy.CONDITIONAL),
)


class ActivityCatalog:
    """Read-only, insertion-ordered table of activity definitions.

    Safe for unsynchronized concurrent reads.
    """

    __slots__ = ("_by_id", "_ordered")

    def __init__(self, activities: Iterable[Activity]) -> None:
        ordered = tuple(activities)
        if not ordered:
            raise ValueError("Activity catalog cannot be empty")

        by_id: dict[str, Activity] = {}
        for activity in ordered:
            if activity.id in by_id:
                raise ValueError(f"Duplicate activity id: {activity.id!r}")
            if activity.reward < 0:
                raise ValueError(
                    f"Activity {activity.id!r} has a negative reward ({activity.reward})"
                )
            by_id[activity.id] = activity

        self._ordered = ordered
        self._by_id: Mapping[str, Activity] = MappingProxyType(by_id)

    @classmethod
    def default(cls) -> ActivityCatalog:
        return cls(DEFAULT_ACTIVITIES)

    def list(self) -> tuple[Activity, ...]:
        """All activities in definition order."""
        return self._ordered

    def by_id(self, activity_id: str) -> Activity | None:
        return self._by_id.get(activity_id)

    def __contains__(self, activity_id: object) -> bool:
        return activity_id in self._by_id

    def __iter__(self) -> Iterator[Activity]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __repr__(self) -> str:
        return f"<ActivityCatalog ids={[a.id for a in self._ordered]}>"
