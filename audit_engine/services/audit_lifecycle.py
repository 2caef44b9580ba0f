"""
Audit Lifecycle Service - the audit status state machine.

    DRAFT -> IN_PROGRESS -> IN_REVIEW -> CLOSED
                 ^              |          |
                 +-- changes ---+          |
                                ^--reopen--+
    any non-CLOSED -> CLOSED (direct close)

Each transition reads the audit, checks guards, then applies the change
with a single compare-and-swap on the status it read.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional
import logging

from sqlalchemy.orm import Session

from audit_engine.errors import EmptyScope, InvalidState, ValidationError
from audit_engine.models.audit import Audit, AuditScopeLineItem, AuditStatus, AuditType
from audit_engine.models.findings import Finding
from audit_engine.services.access_control import (
    Actor, LEAD_AUDITOR, Role, SCOPE_AND_CLOSE, require_role
)
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.guards import (
    compare_and_set_status, fetch_for_company, parse_enum
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    name: str
    sources: FrozenSet[AuditStatus]
    target: AuditStatus
    roles: FrozenSet[Role]
    action: str


TRANSITIONS = {
    'start': Transition(
        'start', frozenset({AuditStatus.DRAFT}), AuditStatus.IN_PROGRESS,
        SCOPE_AND_CLOSE, 'AUDIT_STARTED'),
    'submit_for_review': Transition(
        'submit_for_review', frozenset({AuditStatus.IN_PROGRESS}), AuditStatus.IN_REVIEW,
        SCOPE_AND_CLOSE, 'AUDIT_SUBMITTED_FOR_REVIEW'),
    'request_changes': Transition(
        'request_changes', frozenset({AuditStatus.IN_REVIEW}), AuditStatus.IN_PROGRESS,
        LEAD_AUDITOR, 'AUDIT_CHANGES_REQUESTED'),
    'approve': Transition(
        'approve', frozenset({AuditStatus.IN_REVIEW}), AuditStatus.CLOSED,
        LEAD_AUDITOR, 'AUDIT_APPROVED'),
    'close': Transition(
        'close',
        frozenset({AuditStatus.DRAFT, AuditStatus.IN_PROGRESS, AuditStatus.IN_REVIEW}),
        AuditStatus.CLOSED, SCOPE_AND_CLOSE, 'AUDIT_CLOSED'),
    'reopen': Transition(
        'reopen', frozenset({AuditStatus.CLOSED}), AuditStatus.IN_REVIEW,
        LEAD_AUDITOR, 'AUDIT_REOPENED'),
}


@dataclass
class TransitionResult:
    audit: Audit
    warnings: List[str] = field(default_factory=list)


class AuditLifecycleService:
    """Audit creation and status transitions."""

    def __init__(self, session: Session):
        self.session = session
        self.trail = AuditTrailService(session)

    def create_audit(
        self,
        actor: Actor,
        audit_type: str,
        title: str,
        scope_time_from: date,
        scope_time_to: date,
        description: Optional[str] = None,
        external_auditor_name: Optional[str] = None,
        external_auditor_org: Optional[str] = None,
        external_auditor_email: Optional[str] = None,
    ) -> Audit:
        """Create a DRAFT audit."""
        require_role(actor, SCOPE_AND_CLOSE, "create audits")

        try:
            audit_type = AuditType(audit_type)
        except ValueError:
            raise ValidationError("Audit type must be INTERNAL or EXTERNAL")
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not scope_time_from or not scope_time_to:
            raise ValidationError("Scope time window is required")
        if scope_time_to < scope_time_from:
            raise ValidationError("Scope end date must not be before its start date")

        if audit_type == AuditType.EXTERNAL:
            missing = [
                name for name, value in (
                    ('external_auditor_name', external_auditor_name),
                    ('external_auditor_org', external_auditor_org),
                    ('external_auditor_email', external_auditor_email),
                ) if not value
            ]
            if missing:
                raise ValidationError("External audits require auditor details",
                                      {'missing_fields': missing})

        audit = Audit(
            company_id=actor.company_id,
            audit_type=audit_type.value,
            title=title.strip(),
            description=description,
            status=AuditStatus.DRAFT.value,
            scope_time_from=scope_time_from,
            scope_time_to=scope_time_to,
            scope_locked=False,
            external_auditor_name=external_auditor_name,
            external_auditor_org=external_auditor_org,
            external_auditor_email=external_auditor_email,
            created_by=actor.user_id,
        )
        self.session.add(audit)
        self.session.flush()

        self.trail.log_change(
            actor.company_id, actor.user_id, 'AUDIT_CREATED', 'audit', audit.id,
            after={'audit_type': audit.audit_type, 'title': audit.title,
                   'status': audit.status}
        )
        logger.info(f"Created {audit.audit_type} audit {audit.id}")
        return audit

    def get_audit(self, actor: Actor, audit_id: str) -> Audit:
        return fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")

    def list_audits(self, actor: Actor, status: Optional[str] = None) -> List[Audit]:
        if status:
            return Audit.get_by_status(self.session, actor.company_id,
                                       parse_enum(AuditStatus, status, 'status').value)
        return self.session.query(Audit).filter(
            Audit.company_id == actor.company_id
        ).order_by(Audit.created_at.desc()).all()

    def start_audit(self, actor: Actor, audit_id: str) -> Audit:
        """DRAFT -> IN_PROGRESS. Locks the scope for good."""
        transition = TRANSITIONS['start']
        audit = self._check(actor, audit_id, transition)

        line_items = self.session.query(AuditScopeLineItem).filter(
            AuditScopeLineItem.audit_id == audit.id
        ).count()
        if line_items == 0:
            raise EmptyScope("Select at least one line item before starting the audit")
        if not audit.template_id:
            raise ValidationError("Select an audit template before starting the audit")

        self._apply(actor, audit, transition, {
            'scope_locked': True,
            'started_at': datetime.utcnow(),
        })
        return audit

    def submit_for_review(self, actor: Actor, audit_id: str) -> Audit:
        """IN_PROGRESS -> IN_REVIEW. Clears earlier review notes."""
        transition = TRANSITIONS['submit_for_review']
        audit = self._check(actor, audit_id, transition)
        self._apply(actor, audit, transition, {
            'review_notes': None,
            'submitted_for_review_at': datetime.utcnow(),
        })
        return audit

    def request_changes(self, actor: Actor, audit_id: str, notes: str) -> Audit:
        """IN_REVIEW -> IN_PROGRESS with the lead auditor's notes."""
        transition = TRANSITIONS['request_changes']
        audit = self._check(actor, audit_id, transition)
        if not notes or not notes.strip():
            raise ValidationError("Review notes are required when requesting changes",
                                  {'field': 'notes'})
        self._apply(actor, audit, transition, {'review_notes': notes.strip()})
        return audit

    def approve_audit(self, actor: Actor, audit_id: str,
                      close_reason: Optional[str] = None) -> TransitionResult:
        """
        IN_REVIEW -> CLOSED.

        Open major findings do not block approval; they come back as
        warnings and the close reason, if given, is kept.
        """
        transition = TRANSITIONS['approve']
        audit = self._check(actor, audit_id, transition)

        warnings = []
        open_major = Finding.open_major_for_audit(self.session, audit.id)
        if open_major:
            warnings.append(f"{len(open_major)} major non-conformity finding(s) still open")

        now = datetime.utcnow()
        self._apply(actor, audit, transition, {
            'approved_at': now,
            'approved_by': actor.user_id,
            'closed_at': now,
            'closed_by': actor.user_id,
            'close_reason': close_reason.strip() if close_reason and close_reason.strip() else None,
        }, extra={'open_major_findings': len(open_major)})
        return TransitionResult(audit=audit, warnings=warnings)

    def close_audit(self, actor: Actor, audit_id: str, reason: Optional[str] = None) -> Audit:
        """
        Any non-CLOSED -> CLOSED without lead review.

        A reason is mandatory while any major finding is open.
        """
        transition = TRANSITIONS['close']
        audit = self._check(actor, audit_id, transition)

        reason = reason.strip() if reason and reason.strip() else None
        open_major = Finding.open_major_for_audit(self.session, audit.id)
        if open_major and not reason:
            raise ValidationError(
                "Cannot close audit with open major findings without providing a reason",
                {'open_major_findings': len(open_major)}
            )

        self._apply(actor, audit, transition, {
            'close_reason': reason,
            'closed_at': datetime.utcnow(),
            'closed_by': actor.user_id,
        }, extra={'open_major_findings': len(open_major)})
        return audit

    def reopen_audit(self, actor: Actor, audit_id: str, reason: str) -> Audit:
        """CLOSED -> IN_REVIEW. The earlier approval timestamp is kept."""
        transition = TRANSITIONS['reopen']
        audit = self._check(actor, audit_id, transition)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reopen an audit",
                                  {'field': 'reason'})
        self._apply(actor, audit, transition, {
            'reopened_at': datetime.utcnow(),
            'reopen_reason': reason.strip(),
            'closed_at': None,
            'closed_by': None,
        })
        return audit

    def _check(self, actor: Actor, audit_id: str, transition: Transition) -> Audit:
        require_role(actor, transition.roles, transition.name.replace('_', ' ') + " audits")
        audit = self.get_audit(actor, audit_id)
        if AuditStatus(audit.status) not in transition.sources:
            raise InvalidState(
                f"Cannot {transition.name.replace('_', ' ')} an audit in {audit.status}",
                {'current_status': audit.status,
                 'allowed_from': sorted(s.value for s in transition.sources)}
            )
        return audit

    def _apply(self, actor: Actor, audit: Audit, transition: Transition,
               values: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> None:
        before = audit.status
        values = dict(values, status=transition.target.value)
        compare_and_set_status(self.session, audit, before, values)

        after = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in values.items()
        }
        after.update(extra or {})
        self.trail.log_change(
            actor.company_id, actor.user_id, transition.action, 'audit', audit.id,
            before={'status': before}, after=after
        )
        logger.info(f"Audit {audit.id}: {before} -> {transition.target.value} ({transition.name})")
