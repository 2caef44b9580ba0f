"""
Evidence Models

- EvidenceRequest: a requested document, standalone or linked to an
  audit, an indicator or a finding
- EvidenceItem: one submitted file or link against a request
"""

from datetime import date
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime,
    ForeignKey, event
)
from sqlalchemy.orm import relationship

from .base import Base


class EvidenceType(str, Enum):
    """Kinds of document that can be requested and reviewed."""
    POLICY = 'POLICY'
    PROCEDURE = 'PROCEDURE'
    TRAINING_RECORD = 'TRAINING_RECORD'
    RISK_ASSESSMENT = 'RISK_ASSESSMENT'
    CARE_PLAN = 'CARE_PLAN'
    QUALIFICATION = 'QUALIFICATION'
    WWCC = 'WWCC'
    SERVICE_AGREEMENT = 'SERVICE_AGREEMENT'
    INCIDENT_REPORT = 'INCIDENT_REPORT'
    COMPLAINT_RECORD = 'COMPLAINT_RECORD'
    OTHER = 'OTHER'


class EvidenceStatus(str, Enum):
    REQUESTED = 'REQUESTED'
    SUBMITTED = 'SUBMITTED'
    UNDER_REVIEW = 'UNDER_REVIEW'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'


class EvidenceItemKind(str, Enum):
    UPLOAD = 'UPLOAD'
    LINK = 'LINK'


class EvidenceRequest(Base):
    """
    Evidence Request.

    Moves REQUESTED -> SUBMITTED -> UNDER_REVIEW -> ACCEPTED | REJECTED.
    A REJECTED request goes back to SUBMITTED when a new item arrives.
    The public token lets an external auditee upload without an account.
    """
    __tablename__ = 'evidence_requests'

    company_id = Column(String(36), nullable=False, index=True)
    audit_id = Column(String(36), ForeignKey('audits.id'), index=True)
    finding_id = Column(String(36), ForeignKey('findings.id'), index=True)
    template_indicator_id = Column(String(36), ForeignKey('template_indicators.id'))

    evidence_type = Column(String(40), nullable=False)
    request_note = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=EvidenceStatus.REQUESTED.value)
    due_date = Column(Date)
    public_token = Column(String(128), unique=True, index=True)

    requested_by = Column(String(36), nullable=False)
    submitted_at = Column(DateTime)
    reviewed_by = Column(String(36))
    reviewed_at = Column(DateTime)
    review_note = Column(Text)

    finding = relationship('Finding', back_populates='evidence_requests')
    items = relationship('EvidenceItem', back_populates='request',
                         order_by='EvidenceItem.created_at')

    def __repr__(self):
        return f"<EvidenceRequest({self.evidence_type}, status={self.status})>"

    @property
    def is_overdue(self) -> bool:
        """Display hint only; due dates are never enforced."""
        return (
            self.due_date is not None
            and self.status not in (EvidenceStatus.ACCEPTED.value, EvidenceStatus.REJECTED.value)
            and self.due_date < date.today()
        )

    @property
    def latest_item(self) -> Optional['EvidenceItem']:
        return self.items[-1] if self.items else None

    def to_dict(self) -> dict:
        result = super().to_dict()
        result['is_overdue'] = self.is_overdue
        return result

    @classmethod
    def get_by_token(cls, session, token: str) -> Optional['EvidenceRequest']:
        return session.query(cls).filter(cls.public_token == token).first()

    @classmethod
    def get_for_finding(cls, session, finding_id: str) -> List['EvidenceRequest']:
        return session.query(cls).filter(cls.finding_id == finding_id).all()


class EvidenceItem(Base):
    """
    One submitted file or link.

    Only the storage reference is kept; file content lives with the
    storage collaborator. Items are immutable once written.
    """
    __tablename__ = 'evidence_items'

    company_id = Column(String(36), nullable=False, index=True)
    evidence_request_id = Column(String(36), ForeignKey('evidence_requests.id'),
                                 nullable=False, index=True)

    item_kind = Column(String(10), nullable=False, default=EvidenceItemKind.UPLOAD.value)
    file_path = Column(String(1024))
    file_name = Column(String(255))
    mime_type = Column(String(255))
    file_size_bytes = Column(Integer)
    external_url = Column(String(2048))
    note = Column(Text)

    # Internal uploader, or the external name/email pair from the portal
    uploaded_by = Column(String(36))
    uploader_name = Column(String(255))
    uploader_email = Column(String(255))

    request = relationship('EvidenceRequest', back_populates='items')

    def __repr__(self):
        return f"<EvidenceItem({self.item_kind}, request={self.evidence_request_id})>"

    @property
    def is_external_upload(self) -> bool:
        return self.uploaded_by is None


@event.listens_for(EvidenceItem, 'before_update')
def _refuse_item_update(mapper, connection, target):
    raise ValueError("Evidence items are immutable once submitted")


@event.listens_for(EvidenceItem, 'before_delete')
def _refuse_item_delete(mapper, connection, target):
    raise ValueError("Evidence items are immutable once submitted")
