"""Requester reputation and the approval policy built on it.

The score is a percentile (lower is better, ``1`` meaning top 1%).
Under the default ``informational`` policy the score is only shown to
reviewers and every request is approved.  The ``gated`` policy turns
the percentile into auto-approve / manual-review / auto-reject.

Computing the score (collecting account statistics) is left to a
:class:`ReputationProvider` implementation; none ships by default.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from devkeyring.core.types import ApprovalAction, ReputationPolicy

if TYPE_CHECKING:
    from devkeyring.config.settings import ReputationSettings

log = logging.getLogger(__name__)

# Upper percentile bound of each tier
_TIERS = (
    (1, "S"),
    (12.5, "A+"),
    (25, "A"),
    (37.5, "A-"),
    (50, "B+"),
    (62.5, "B"),
    (75, "B-"),
    (87.5, "C+"),
    (100, "C"),
)


def tier_for(percentile: float) -> str:
    for bound, tier in _TIERS:
        if percentile <= bound:
            return tier
    return "C"


@dataclass(frozen=True)
class ReputationScore:
    percentile: float
    tier: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_percentile(cls, percentile: float, **details: Any) -> ReputationScore:  # noqa: ANN401
        return cls(percentile=percentile, tier=tier_for(percentile), details=details)


@dataclass(frozen=True)
class ApprovalDecision:
    action: ApprovalAction
    reason: str
    score: ReputationScore | None = None


class ReputationProvider(abc.ABC):
    """Source of reputation scores."""

    @abc.abstractmethod
    def score(self, identity: str) -> ReputationScore | None:
        """Return the score of *identity*, or ``None`` when unknown."""


class NullReputationProvider(ReputationProvider):
    """Knows nothing about anyone."""

    def score(self, identity: str) -> ReputationScore | None:  # noqa: ARG002
        return None


def evaluate(score: ReputationScore | None, settings: ReputationSettings) -> ApprovalDecision:
    """Apply the configured approval policy to *score*."""
    if settings.policy == ReputationPolicy.INFORMATIONAL:
        return ApprovalDecision(
            action=ApprovalAction.AUTO_APPROVE,
            reason="Reputation is informational; request approved",
            score=score,
        )

    if score is None:
        return ApprovalDecision(
            action=ApprovalAction.MANUAL_REVIEW,
            reason="No reputation score available; manual review required",
        )
    if score.percentile <= settings.approve_percentile:
        return ApprovalDecision(
            action=ApprovalAction.AUTO_APPROVE,
            reason=f"Top {score.percentile:.1f}% developer (tier {score.tier})",
            score=score,
        )
    if score.percentile > settings.reject_percentile:
        return ApprovalDecision(
            action=ApprovalAction.AUTO_REJECT,
            reason=f"Rank below threshold ({score.percentile:.1f}%, tier {score.tier})",
            score=score,
        )
    return ApprovalDecision(
        action=ApprovalAction.MANUAL_REVIEW,
        reason=f"Requires manual review ({score.percentile:.1f}%, tier {score.tier})",
        score=score,
    )
