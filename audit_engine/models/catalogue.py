"""
Catalogue Models

Reference data an audit is scoped against:
- SupportCategory / SupportLineItem: the registration-group catalogue
- CompanyServiceSelection: line items a company actually delivers
- AuditDomain: compliance domains, per company
- AuditTemplate / TemplateIndicator: assessment questions
"""

from enum import Enum
from typing import List

from sqlalchemy import (
    Column, String, Integer, Boolean, Text,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base


class DomainCode(str, Enum):
    """Default compliance domains."""
    GOV_POLICY = 'GOV_POLICY'
    STAFF_PERSONNEL = 'STAFF_PERSONNEL'
    OPERATIONAL = 'OPERATIONAL'
    SITE_ENVIRONMENT = 'SITE_ENVIRONMENT'


DEFAULT_DOMAINS = [
    (DomainCode.GOV_POLICY, 'Governance & Policy',
     'How the organization is run, controlled, and held accountable'),
    (DomainCode.STAFF_PERSONNEL, 'Staff & Personnel Compliance',
     'Who is allowed to deliver care, and whether they are safe, qualified, and supervised'),
    (DomainCode.OPERATIONAL, 'Operational / Service Delivery',
     'Evidence that supports are delivered as agreed and funded'),
    (DomainCode.SITE_ENVIRONMENT, 'Site-Specific & Environment',
     'Whether the environment itself is safe and suitable for care'),
]


class SupportCategory(Base):
    """Top-level grouping of the support catalogue."""
    __tablename__ = 'support_categories'

    category_key = Column(String(100), unique=True, nullable=False)
    category_label = Column(String(255), nullable=False)
    sort_order = Column(Integer, default=0)

    line_items = relationship('SupportLineItem', back_populates='category')

    def __repr__(self):
        return f"<SupportCategory({self.category_key})>"


class SupportLineItem(Base):
    """A single deliverable support, selectable into an audit scope."""
    __tablename__ = 'support_line_items'

    category_id = Column(String(36), ForeignKey('support_categories.id'), nullable=False, index=True)
    item_code = Column(String(100), unique=True, nullable=False)
    item_label = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    category = relationship('SupportCategory', back_populates='line_items')

    def __repr__(self):
        return f"<SupportLineItem({self.item_code})>"


class CompanyServiceSelection(Base):
    """Line items a company has declared it delivers."""
    __tablename__ = 'company_service_selections'
    __table_args__ = (
        UniqueConstraint('company_id', 'line_item_id', name='uq_company_service_line_item'),
    )

    company_id = Column(String(36), nullable=False, index=True)
    line_item_id = Column(String(36), ForeignKey('support_line_items.id'), nullable=False)

    line_item = relationship('SupportLineItem')

    @classmethod
    def line_item_ids_for(cls, session, company_id: str) -> List[str]:
        rows = session.query(cls.line_item_id).filter(cls.company_id == company_id).all()
        return [row[0] for row in rows]


class AuditDomain(Base):
    """Compliance domain an audit may cover."""
    __tablename__ = 'audit_domains'
    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_audit_domain_code'),
    )

    company_id = Column(String(36), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_enabled_by_default = Column(Boolean, default=True)

    def __repr__(self):
        return f"<AuditDomain({self.code})>"


class AuditTemplate(Base):
    """A named set of assessment indicators."""
    __tablename__ = 'audit_templates'

    company_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True)

    indicators = relationship('TemplateIndicator', back_populates='template',
                              order_by='TemplateIndicator.sort_order')

    def __repr__(self):
        return f"<AuditTemplate({self.name})>"


class TemplateIndicator(Base):
    """
    Assessment question drawn from a template.

    Read-only while an audit is running; responses and findings refer
    back to it by id.
    """
    __tablename__ = 'template_indicators'

    template_id = Column(String(36), ForeignKey('audit_templates.id'), nullable=False, index=True)
    domain_id = Column(String(36), ForeignKey('audit_domains.id'))
    indicator_text = Column(Text, nullable=False)
    guidance_text = Column(Text)
    risk_level = Column(String(20))
    sort_order = Column(Integer, default=0)

    template = relationship('AuditTemplate', back_populates='indicators')
    domain = relationship('AuditDomain')

    def __repr__(self):
        return f"<TemplateIndicator(id={self.id}, template={self.template_id})>"
