"""
stipend.engine.outcomes — Verdicts & Operation Outcomes
========================================================

:class:`Verdict` is the transient answer to "can this user claim this
activity now?".  It is recomputed on every check and never persisted.

Every processor operation returns exactly one of the :data:`Outcome`
variants.  Business rejections (:class:`NotFound`, :class:`Unavailable`,
:class:`ValidationError`) are ordinary values; only infrastructure failures
become :class:`Internal`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

__all__ = [
    "Internal",
    "NotFound",
    "Ok",
    "Outcome",
    "Unavailable",
    "ValidationError",
    "Verdict",
]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Verdict:
    """Availability of one activity for one user at one instant."""

    available: bool
    next_available_at: datetime | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "next_available_at": (
                self.next_available_at.isoformat() if self.next_available_at else None
            ),
            "reason": self.reason,
        }


# ---------------------------------------------------------------------------
# Outcome variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True, slots=True)
class NotFound:
    """The activity id is not in the catalog."""

    activity_id: str
    ok = False

    @property
    def message(self) -> str:
        return f"Activity not found: {self.activity_id}"


@dataclass(frozen=True, slots=True)
class Unavailable:
    """A business rule rejected the claim (policy, lost race, conditional rule)."""

    reason: str
    next_available_at: datetime | None = None
    ok = False

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> Unavailable:
        return cls(
            reason=verdict.reason or "Activity not available",
            next_available_at=verdict.next_available_at,
        )

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "next_available_at": (
                self.next_available_at.isoformat() if self.next_available_at else None
            ),
        }


@dataclass(frozen=True, slots=True)
class ValidationError:
    """Malformed input (blank activity id, non-mapping args …)."""

    message: str
    ok = False


@dataclass(frozen=True, slots=True)
class Internal:
    """A ledger / balance-store failure.  Nothing was committed."""

    cause: Any
    ok = False

    @property
    def message(self) -> str:
        return "Internal error"


Outcome = Ok[Any] | NotFound | Unavailable | ValidationError | Internal
