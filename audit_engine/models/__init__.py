"""
Audit Engine Database Models

SQLAlchemy models for the audit lifecycle and compliance scoring engine.

Modules:
- base: Database connection and base model class
- catalogue: Support catalogue, compliance domains, assessment templates
- audit: Audits, scope, indicator responses
- findings: Findings and their activity history
- evidence: Evidence requests and submitted items
- document_review: Checklists, document reviews, suggested findings
- changelog: Hash-chained system change log
"""

from .base import (
    Base, configure_engine, init_db, drop_db, get_db_session, SessionLocal,
)
from .catalogue import (
    DomainCode,
    DEFAULT_DOMAINS,
    SupportCategory,
    SupportLineItem,
    CompanyServiceSelection,
    AuditDomain,
    AuditTemplate,
    TemplateIndicator,
)
from .audit import (
    AuditType,
    AuditStatus,
    Rating,
    ResponseStatus,
    Audit,
    AuditScopeLineItem,
    AuditScopeDomain,
    IndicatorResponse,
)
from .findings import (
    FindingSeverity,
    FindingStatus,
    FindingSource,
    ActivityType,
    Finding,
    FindingActivity,
)
from .evidence import (
    EvidenceType,
    EvidenceStatus,
    EvidenceItemKind,
    EvidenceRequest,
    EvidenceItem,
)
from .document_review import (
    ChecklistSection,
    ChecklistAnswer,
    ReviewDecision,
    SuggestedType,
    SeverityFlag,
    SuggestionStatus,
    ConfirmationType,
    DocumentChecklistTemplate,
    DocumentChecklistItem,
    DocumentReview,
    SuggestedFinding,
    Pending,
    ConfirmedWithFinding,
    ConfirmedAsObservation,
    Dismissed,
    SuggestionOutcome,
)
from .changelog import ActorType, ChangeLog, ChangeLogHead

__all__ = [
    # Base
    'Base', 'configure_engine', 'init_db', 'drop_db', 'get_db_session', 'SessionLocal',
    # Catalogue
    'DomainCode', 'DEFAULT_DOMAINS', 'SupportCategory', 'SupportLineItem',
    'CompanyServiceSelection', 'AuditDomain', 'AuditTemplate', 'TemplateIndicator',
    # Audit
    'AuditType', 'AuditStatus', 'Rating', 'ResponseStatus',
    'Audit', 'AuditScopeLineItem', 'AuditScopeDomain', 'IndicatorResponse',
    # Findings
    'FindingSeverity', 'FindingStatus', 'FindingSource', 'ActivityType',
    'Finding', 'FindingActivity',
    # Evidence
    'EvidenceType', 'EvidenceStatus', 'EvidenceItemKind', 'EvidenceRequest', 'EvidenceItem',
    # Document review
    'ChecklistSection', 'ChecklistAnswer', 'ReviewDecision', 'SuggestedType',
    'SeverityFlag', 'SuggestionStatus', 'ConfirmationType',
    'DocumentChecklistTemplate', 'DocumentChecklistItem', 'DocumentReview',
    'SuggestedFinding', 'Pending', 'ConfirmedWithFinding', 'ConfirmedAsObservation',
    'Dismissed', 'SuggestionOutcome',
    # Change log
    'ActorType', 'ChangeLog', 'ChangeLogHead',
]
