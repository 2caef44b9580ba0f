"""
Suggestion Engine

Turns a completed document review into a non-binding finding proposal.
The policy is a plain lookup over fired signals; thresholds come from
configuration so they can move without touching historical reviews.

Signals:
- decision is REJECT
- at least one critical checklist item answered NO
- DQS below the minor threshold
- DQS below the major threshold

All-NA reviews carry no DQS signal.
"""

from dataclasses import dataclass
from typing import Tuple

from audit_engine.models.document_review import ReviewDecision, SeverityFlag, SuggestedType


@dataclass(frozen=True)
class SuggestionThresholds:
    """DQS bands, percent, exclusive upper bounds."""
    minor_dqs_below: int = 80
    major_dqs_below: int = 50

    @classmethod
    def from_config(cls, config) -> 'SuggestionThresholds':
        return cls(
            minor_dqs_below=int(config.get('SUGGESTION_MINOR_DQS_BELOW', cls.minor_dqs_below)),
            major_dqs_below=int(config.get('SUGGESTION_MAJOR_DQS_BELOW', cls.major_dqs_below)),
        )


@dataclass(frozen=True)
class Suggestion:
    suggested_type: SuggestedType
    severity_flag: SeverityFlag
    rationale: str
    signals: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return self.suggested_type == SuggestedType.NONE


def severity_for(signal_count: int) -> SeverityFlag:
    if signal_count >= 3:
        return SeverityFlag.HIGH
    if signal_count == 2:
        return SeverityFlag.MEDIUM
    return SeverityFlag.LOW


def evaluate_review(
    dqs_percent: int,
    critical_failures_count: int,
    decision: ReviewDecision,
    needs_manual_review: bool = False,
    thresholds: SuggestionThresholds = SuggestionThresholds(),
) -> Suggestion:
    """Decide what, if anything, to suggest for a review."""
    decision = ReviewDecision(decision)
    has_dqs = not needs_manual_review

    rejected = decision == ReviewDecision.REJECT
    critical = critical_failures_count > 0
    below_minor = has_dqs and dqs_percent < thresholds.minor_dqs_below
    below_major = has_dqs and dqs_percent < thresholds.major_dqs_below

    signals = []
    reasons = []
    if rejected:
        signals.append('REJECT')
        reasons.append("Reviewer rejected the document")
    if critical:
        signals.append('CRITICAL_FAILURE')
        reasons.append(f"{critical_failures_count} critical checklist item(s) failed")
    if below_minor:
        signals.append('DQS_BELOW_MINOR')
    if below_major:
        signals.append('DQS_BELOW_MAJOR')
        reasons.append(
            f"Document quality score {dqs_percent}% is below {thresholds.major_dqs_below}%"
        )
    elif below_minor:
        reasons.append(
            f"Document quality score {dqs_percent}% is below {thresholds.minor_dqs_below}%"
        )

    if critical or below_major:
        suggested_type = SuggestedType.MAJOR_NC
    elif rejected or below_minor:
        suggested_type = SuggestedType.MINOR_NC
    else:
        suggested_type = SuggestedType.NONE

    return Suggestion(
        suggested_type=suggested_type,
        severity_flag=severity_for(len(signals)),
        rationale="; ".join(reasons) if reasons else "No non-conformance signals",
        signals=tuple(signals),
    )
