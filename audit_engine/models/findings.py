"""
Finding Models

- Finding: a formal non-conformance with owner, due date and closure
- FindingActivity: append-only history of everything done to a finding
"""

from datetime import date
from enum import Enum
from typing import List

from sqlalchemy import (
    Column, String, Text, Date, DateTime,
    ForeignKey, Index, event
)
from sqlalchemy.orm import relationship

from .base import Base


class FindingSeverity(str, Enum):
    """Mirrors the non-conformity rating that raised the finding."""
    MINOR_NC = 'MINOR_NC'
    MAJOR_NC = 'MAJOR_NC'


class FindingStatus(str, Enum):
    OPEN = 'OPEN'
    UNDER_REVIEW = 'UNDER_REVIEW'
    CLOSED = 'CLOSED'


class FindingSource(str, Enum):
    """Where the finding came from."""
    INDICATOR_RESPONSE = 'INDICATOR_RESPONSE'
    DOCUMENT_REVIEW = 'DOCUMENT_REVIEW'


class ActivityType(str, Enum):
    """Finding history entry types."""
    CREATED = 'CREATED'
    STATUS_CHANGED = 'STATUS_CHANGED'
    OWNER_ASSIGNED = 'OWNER_ASSIGNED'
    DUE_DATE_SET = 'DUE_DATE_SET'
    COMMENT_ADDED = 'COMMENT_ADDED'
    EVIDENCE_REQUESTED = 'EVIDENCE_REQUESTED'
    EVIDENCE_SUBMITTED = 'EVIDENCE_SUBMITTED'
    EVIDENCE_REVIEWED = 'EVIDENCE_REVIEWED'
    CLOSURE_INITIATED = 'CLOSURE_INITIATED'
    CLOSED = 'CLOSED'
    REOPENED = 'REOPENED'


class Finding(Base):
    """
    Finding - formal non-conformance.

    Raised automatically from a non-conformity indicator response, or by
    confirming a suggested finding from a document review. Only a human
    closes it.
    """
    __tablename__ = 'findings'
    __table_args__ = (
        Index('ix_findings_company_status', 'company_id', 'status'),
        Index('ix_findings_audit_indicator', 'audit_id', 'template_indicator_id'),
    )

    company_id = Column(String(36), nullable=False, index=True)
    audit_id = Column(String(36), ForeignKey('audits.id'))
    template_indicator_id = Column(String(36), ForeignKey('template_indicators.id'))
    indicator_response_id = Column(String(36), ForeignKey('indicator_responses.id'))

    source = Column(String(30), nullable=False, default=FindingSource.INDICATOR_RESPONSE.value)
    source_document_review_id = Column(String(36), index=True)

    severity = Column(String(20), nullable=False)
    finding_text = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=FindingStatus.OPEN.value)

    owner_id = Column(String(36))
    due_date = Column(Date)

    closure_note = Column(Text)
    closed_at = Column(DateTime)
    closed_by = Column(String(36))

    created_by = Column(String(36), nullable=False)

    activities = relationship('FindingActivity', back_populates='finding',
                              order_by='FindingActivity.created_at')
    evidence_requests = relationship('EvidenceRequest', back_populates='finding')

    def __repr__(self):
        return f"<Finding(severity={self.severity}, status={self.status})>"

    @property
    def is_overdue(self) -> bool:
        """Display hint only; due dates are never enforced."""
        return (
            self.due_date is not None
            and self.status != FindingStatus.CLOSED.value
            and self.due_date < date.today()
        )

    def to_dict(self) -> dict:
        result = super().to_dict()
        result['is_overdue'] = self.is_overdue
        return result

    @classmethod
    def open_major_for_audit(cls, session, audit_id: str) -> List['Finding']:
        return session.query(cls).filter(
            cls.audit_id == audit_id,
            cls.severity == FindingSeverity.MAJOR_NC.value,
            cls.status == FindingStatus.OPEN.value
        ).all()


class FindingActivity(Base):
    """
    Finding Activity - what happened to a finding and when.

    Rows are only ever inserted.
    """
    __tablename__ = 'finding_activities'

    company_id = Column(String(36), nullable=False, index=True)
    finding_id = Column(String(36), ForeignKey('findings.id'), nullable=False, index=True)
    activity_type = Column(String(30), nullable=False)
    message = Column(Text, nullable=False)
    actor_id = Column(String(36))

    finding = relationship('Finding', back_populates='activities')

    def __repr__(self):
        return f"<FindingActivity({self.activity_type}, finding={self.finding_id})>"


@event.listens_for(FindingActivity, 'before_update')
def _refuse_activity_update(mapper, connection, target):
    raise ValueError("Finding activity entries are append-only")


@event.listens_for(FindingActivity, 'before_delete')
def _refuse_activity_delete(mapper, connection, target):
    raise ValueError("Finding activity entries are append-only")
