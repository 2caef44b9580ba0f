"""
Audit Models

The audit record and what hangs directly off it:
- Audit: one compliance audit instance and its lifecycle timestamps
- AuditScopeLineItem / AuditScopeDomain: the pinned scope
- IndicatorResponse: one rating per template indicator per audit
"""

from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Column, String, Integer, Boolean, Text, Date, DateTime,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from .base import Base


class AuditType(str, Enum):
    """Who is running the audit."""
    INTERNAL = 'INTERNAL'
    EXTERNAL = 'EXTERNAL'


class AuditStatus(str, Enum):
    """Audit lifecycle states. Reopen lands back in IN_REVIEW."""
    DRAFT = 'DRAFT'
    IN_PROGRESS = 'IN_PROGRESS'
    IN_REVIEW = 'IN_REVIEW'
    CLOSED = 'CLOSED'


class Rating(str, Enum):
    """Indicator ratings, worst first."""
    MAJOR_NC = 'MAJOR_NC'
    MINOR_NC = 'MINOR_NC'
    CONFORMITY = 'CONFORMITY'
    CONFORMITY_BEST_PRACTICE = 'CONFORMITY_BEST_PRACTICE'

    @property
    def is_nonconformity(self) -> bool:
        return self in (Rating.MAJOR_NC, Rating.MINOR_NC)


class ResponseStatus(str, Enum):
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'


class Audit(Base):
    """
    Compliance Audit.

    Created DRAFT, pinned to a scope, assessed IN_PROGRESS, reviewed
    IN_REVIEW and finally CLOSED. ``scope_locked`` flips to true on the
    first start and never back.
    """
    __tablename__ = 'audits'
    __table_args__ = (
        Index('ix_audits_company_status', 'company_id', 'status'),
    )

    company_id = Column(String(36), nullable=False, index=True)

    audit_type = Column(String(20), nullable=False, default=AuditType.INTERNAL.value)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, default=AuditStatus.DRAFT.value)

    # Scope
    scope_time_from = Column(Date, nullable=False)
    scope_time_to = Column(Date, nullable=False)
    scope_locked = Column(Boolean, nullable=False, default=False)
    template_id = Column(String(36), ForeignKey('audit_templates.id'))

    # External auditor (EXTERNAL audits only)
    external_auditor_name = Column(String(255))
    external_auditor_org = Column(String(255))
    external_auditor_email = Column(String(255))

    created_by = Column(String(36), nullable=False)
    started_at = Column(DateTime)

    # Review
    submitted_for_review_at = Column(DateTime)
    review_notes = Column(Text)
    approved_at = Column(DateTime)
    approved_by = Column(String(36))

    # Closure
    close_reason = Column(Text)
    closed_at = Column(DateTime)
    closed_by = Column(String(36))
    reopened_at = Column(DateTime)
    reopen_reason = Column(Text)

    template = relationship('AuditTemplate')
    scope_line_items = relationship('AuditScopeLineItem', back_populates='audit',
                                    cascade='all, delete-orphan')
    scope_domains = relationship('AuditScopeDomain', back_populates='audit',
                                 cascade='all, delete-orphan')
    responses = relationship('IndicatorResponse', back_populates='audit')

    def __repr__(self):
        return f"<Audit({self.title}, status={self.status})>"

    @classmethod
    def get_by_status(cls, session, company_id: str, status: str) -> List['Audit']:
        return session.query(cls).filter(
            cls.company_id == company_id,
            cls.status == status
        ).order_by(cls.created_at.desc()).all()


class AuditScopeLineItem(Base):
    """Catalogue line item included in an audit's scope."""
    __tablename__ = 'audit_scope_line_items'
    __table_args__ = (
        UniqueConstraint('audit_id', 'line_item_id', name='uq_audit_scope_line_item'),
    )

    audit_id = Column(String(36), ForeignKey('audits.id'), nullable=False, index=True)
    line_item_id = Column(String(36), ForeignKey('support_line_items.id'), nullable=False)

    audit = relationship('Audit', back_populates='scope_line_items')
    line_item = relationship('SupportLineItem')


class AuditScopeDomain(Base):
    """Compliance domain included in an audit's scope."""
    __tablename__ = 'audit_scope_domains'
    __table_args__ = (
        UniqueConstraint('audit_id', 'domain_id', name='uq_audit_scope_domain'),
    )

    audit_id = Column(String(36), ForeignKey('audits.id'), nullable=False, index=True)
    domain_id = Column(String(36), ForeignKey('audit_domains.id'), nullable=False)
    is_included = Column(Boolean, nullable=False, default=True)

    audit = relationship('Audit', back_populates='scope_domains')
    domain = relationship('AuditDomain')


class IndicatorResponse(Base):
    """
    Indicator Response - one rating per (audit, indicator).

    ``score_points`` is frozen at write time together with the
    ``score_version`` that produced it, so historical scores stay
    reproducible when the points table changes.
    """
    __tablename__ = 'indicator_responses'
    __table_args__ = (
        UniqueConstraint('audit_id', 'template_indicator_id', name='uq_response_audit_indicator'),
    )

    company_id = Column(String(36), nullable=False, index=True)
    audit_id = Column(String(36), ForeignKey('audits.id'), nullable=False, index=True)
    template_indicator_id = Column(String(36), ForeignKey('template_indicators.id'), nullable=False)

    rating = Column(String(40), nullable=False)
    comment = Column(Text)
    score_points = Column(Integer, nullable=False)
    score_version = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default=ResponseStatus.OPEN.value)

    created_by = Column(String(36), nullable=False)
    updated_by = Column(String(36))

    # Lead-auditor review
    review_comment = Column(Text)
    review_comment_by = Column(String(36))
    review_comment_at = Column(DateTime)

    audit = relationship('Audit', back_populates='responses')
    indicator = relationship('TemplateIndicator')

    def __repr__(self):
        return f"<IndicatorResponse(indicator={self.template_indicator_id}, rating={self.rating})>"

    @property
    def is_nonconformity(self) -> bool:
        return Rating(self.rating).is_nonconformity

    @classmethod
    def get_for_indicator(cls, session, audit_id: str,
                          indicator_id: str) -> Optional['IndicatorResponse']:
        return session.query(cls).filter(
            cls.audit_id == audit_id,
            cls.template_indicator_id == indicator_id
        ).first()
