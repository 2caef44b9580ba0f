"""
Audit Engine Services

Business logic layer for the audit lifecycle and compliance scoring engine.
"""

from .access_control import Actor, Role, require_role
from .audit_trail import AuditTrailService
from .scope_service import ScopeService
from .response_service import ResponseService
from .finding_service import FindingService
from .evidence_service import EvidenceService, SubmittedItem
from .document_review_service import DocumentReviewService
from .audit_lifecycle import AuditLifecycleService, TRANSITIONS
from .checklist_catalog import seed_checklist_templates

__all__ = [
    'Actor',
    'Role',
    'require_role',
    'AuditTrailService',
    'ScopeService',
    'ResponseService',
    'FindingService',
    'EvidenceService',
    'SubmittedItem',
    'DocumentReviewService',
    'AuditLifecycleService',
    'TRANSITIONS',
    'seed_checklist_templates',
]
