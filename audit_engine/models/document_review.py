"""
Document Review Models

Structured quality review of a submitted evidence item:
- DocumentChecklistTemplate / DocumentChecklistItem: versioned checklists
- DocumentReview: one completed, immutable review
- SuggestedFinding: a non-binding finding proposal awaiting a human
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import (
    Column, String, Integer, Boolean, Text, DateTime, JSON,
    ForeignKey, UniqueConstraint, CheckConstraint, event
)
from sqlalchemy.orm import relationship

from .base import Base


class ChecklistSection(str, Enum):
    HYGIENE = 'HYGIENE'
    IMPLEMENTATION = 'IMPLEMENTATION'
    CRITICAL = 'CRITICAL'


class ChecklistAnswer(str, Enum):
    YES = 'YES'
    NO = 'NO'
    PARTLY = 'PARTLY'
    NA = 'NA'


class ReviewDecision(str, Enum):
    ACCEPT = 'ACCEPT'
    REJECT = 'REJECT'


class SuggestedType(str, Enum):
    MINOR_NC = 'MINOR_NC'
    MAJOR_NC = 'MAJOR_NC'
    NONE = 'NONE'


class SeverityFlag(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


class SuggestionStatus(str, Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    DISMISSED = 'DISMISSED'


class ConfirmationType(str, Enum):
    """What a human may confirm a suggestion as."""
    MAJOR_NC = 'MAJOR_NC'
    MINOR_NC = 'MINOR_NC'
    OBSERVATION = 'OBSERVATION'


class DocumentChecklistTemplate(Base):
    """Checklist for one document type at one version."""
    __tablename__ = 'document_checklist_templates'
    __table_args__ = (
        UniqueConstraint('document_type', 'version', name='uq_checklist_type_version'),
    )

    document_type = Column(String(40), nullable=False, index=True)
    template_name = Column(String(255), nullable=False)
    description = Column(Text)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    items = relationship('DocumentChecklistItem', back_populates='template',
                         order_by='DocumentChecklistItem.sort_order')

    def __repr__(self):
        return f"<DocumentChecklistTemplate({self.document_type}, v{self.version})>"

    @classmethod
    def active_for_type(cls, session, document_type: str) -> Optional['DocumentChecklistTemplate']:
        """Latest active version for a document type."""
        return session.query(cls).filter(
            cls.document_type == document_type,
            cls.is_active.is_(True)
        ).order_by(cls.version.desc()).first()


class DocumentChecklistItem(Base):
    __tablename__ = 'document_checklist_items'
    __table_args__ = (
        UniqueConstraint('template_id', 'item_key', name='uq_checklist_item_key'),
    )

    template_id = Column(String(36), ForeignKey('document_checklist_templates.id'),
                         nullable=False, index=True)
    item_key = Column(String(50), nullable=False)
    item_text = Column(Text, nullable=False)
    section = Column(String(20), nullable=False)
    is_critical = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    template = relationship('DocumentChecklistTemplate', back_populates='items')

    def __repr__(self):
        return f"<DocumentChecklistItem({self.item_key}, critical={self.is_critical})>"


class DocumentReview(Base):
    """
    Document Review - one completed checklist pass over an evidence item.

    The decision is the reviewer's own; DQS and critical failures are
    advisory. A re-review writes a new row.
    """
    __tablename__ = 'document_reviews'

    company_id = Column(String(36), nullable=False, index=True)
    evidence_item_id = Column(String(36), ForeignKey('evidence_items.id'), nullable=False, index=True)
    evidence_request_id = Column(String(36), ForeignKey('evidence_requests.id'), nullable=False)
    audit_id = Column(String(36), ForeignKey('audits.id'))
    checklist_template_id = Column(String(36), ForeignKey('document_checklist_templates.id'),
                                   nullable=False)

    responses = Column(JSON, nullable=False)  # [{item_id, item_key, response}]
    dqs_percent = Column(Integer, nullable=False)
    critical_failures_count = Column(Integer, nullable=False)
    needs_manual_review = Column(Boolean, nullable=False, default=False)
    decision = Column(String(10), nullable=False)
    justification = Column(Text)

    reviewer_id = Column(String(36), nullable=False)

    checklist_template = relationship('DocumentChecklistTemplate')
    suggestions = relationship('SuggestedFinding', back_populates='document_review')

    def __repr__(self):
        return f"<DocumentReview(dqs={self.dqs_percent}, decision={self.decision})>"


@event.listens_for(DocumentReview, 'before_update')
def _refuse_review_update(mapper, connection, target):
    raise ValueError("Document reviews are immutable; submit a new review instead")


@event.listens_for(DocumentReview, 'before_delete')
def _refuse_review_delete(mapper, connection, target):
    raise ValueError("Document reviews are immutable; submit a new review instead")


@dataclass(frozen=True)
class Pending:
    kind = 'PENDING'


@dataclass(frozen=True)
class ConfirmedWithFinding:
    finding_id: str
    finding_type: str
    confirmed_by: str
    confirmed_at: datetime
    kind = 'CONFIRMED_WITH_FINDING'


@dataclass(frozen=True)
class ConfirmedAsObservation:
    note: str
    confirmed_by: str
    confirmed_at: datetime
    kind = 'CONFIRMED_AS_OBSERVATION'


@dataclass(frozen=True)
class Dismissed:
    dismissed_by: str
    dismissed_at: datetime
    reason: Optional[str] = None
    kind = 'DISMISSED'


SuggestionOutcome = Union[Pending, ConfirmedWithFinding, ConfirmedAsObservation, Dismissed]


class SuggestedFinding(Base):
    """
    Suggested Finding - a proposal a human must confirm or dismiss.

    Leaves PENDING exactly once. The check constraints keep a CONFIRMED
    row from carrying neither a finding nor an observation note.
    """
    __tablename__ = 'suggested_findings'
    __table_args__ = (
        CheckConstraint(
            "status != 'CONFIRMED' OR confirmed_finding_id IS NOT NULL "
            "OR confirmation_note IS NOT NULL",
            name='ck_suggestion_confirmed_has_outcome'
        ),
        CheckConstraint(
            "status != 'DISMISSED' OR dismissed_by IS NOT NULL",
            name='ck_suggestion_dismissed_has_actor'
        ),
    )

    company_id = Column(String(36), nullable=False, index=True)
    document_review_id = Column(String(36), ForeignKey('document_reviews.id'), nullable=False)
    evidence_item_id = Column(String(36), ForeignKey('evidence_items.id'), nullable=False, index=True)
    evidence_request_id = Column(String(36), ForeignKey('evidence_requests.id'), nullable=False)
    audit_id = Column(String(36), ForeignKey('audits.id'))

    suggested_type = Column(String(10), nullable=False)
    severity_flag = Column(String(10), nullable=False)
    rationale = Column(Text, nullable=False)
    status = Column(String(10), nullable=False, default=SuggestionStatus.PENDING.value)

    confirmed_finding_id = Column(String(36), ForeignKey('findings.id'))
    confirmed_finding_type = Column(String(20))
    confirmation_note = Column(Text)
    confirmed_by = Column(String(36))
    confirmed_at = Column(DateTime)

    dismissed_by = Column(String(36))
    dismissed_at = Column(DateTime)
    dismiss_reason = Column(Text)

    document_review = relationship('DocumentReview', back_populates='suggestions')
    confirmed_finding = relationship('Finding')

    def __repr__(self):
        return f"<SuggestedFinding({self.suggested_type}, status={self.status})>"

    @property
    def outcome(self) -> SuggestionOutcome:
        if self.status == SuggestionStatus.CONFIRMED.value:
            if self.confirmed_finding_id:
                return ConfirmedWithFinding(
                    finding_id=self.confirmed_finding_id,
                    finding_type=self.confirmed_finding_type,
                    confirmed_by=self.confirmed_by,
                    confirmed_at=self.confirmed_at,
                )
            return ConfirmedAsObservation(
                note=self.confirmation_note,
                confirmed_by=self.confirmed_by,
                confirmed_at=self.confirmed_at,
            )
        if self.status == SuggestionStatus.DISMISSED.value:
            return Dismissed(
                dismissed_by=self.dismissed_by,
                dismissed_at=self.dismissed_at,
                reason=self.dismiss_reason,
            )
        return Pending()

    def to_dict(self) -> dict:
        result = super().to_dict()
        outcome = self.outcome
        payload = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in asdict(outcome).items()
        }
        payload['kind'] = outcome.kind
        result['outcome'] = payload
        return result
