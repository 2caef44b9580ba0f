"""
Finding Service - Findings Register.

Handles:
- Raising findings from non-conformity responses and confirmed suggestions
- Owner, due date and status changes
- Closure (closure note mandatory for major non-conformities)
- Append-only activity history
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from audit_engine.errors import InvalidState, ValidationError
from audit_engine.models.audit import IndicatorResponse, ResponseStatus
from audit_engine.models.catalogue import TemplateIndicator
from audit_engine.models.findings import (
    Finding, FindingActivity, FindingSeverity, FindingStatus, FindingSource, ActivityType
)
from audit_engine.services.access_control import (
    Actor, CONTRIBUTORS, FINDING_CLOSERS, require_role
)
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.guards import (
    compare_and_set_status, fetch_for_company, parse_enum
)

logger = logging.getLogger(__name__)

_UNSET = object()

# Allowed status moves and the activity each one records
STATUS_TRANSITIONS = {
    (FindingStatus.OPEN, FindingStatus.UNDER_REVIEW): ActivityType.CLOSURE_INITIATED,
    (FindingStatus.OPEN, FindingStatus.CLOSED): ActivityType.CLOSED,
    (FindingStatus.UNDER_REVIEW, FindingStatus.CLOSED): ActivityType.CLOSED,
    (FindingStatus.CLOSED, FindingStatus.OPEN): ActivityType.REOPENED,
}


def finding_text_for(indicator_text: str, comment: Optional[str]) -> str:
    return f"Indicator: {indicator_text}. Auditor comment: {comment or ''}."


class FindingService:
    """Findings register service."""

    def __init__(self, session: Session):
        self.session = session
        self.trail = AuditTrailService(session)

    # Creation

    def create_from_response(
        self,
        actor_id: str,
        response: IndicatorResponse,
        indicator: TemplateIndicator,
    ) -> Finding:
        """Raise a finding for a non-conformity response. Severity mirrors the rating."""
        finding = Finding(
            company_id=response.company_id,
            audit_id=response.audit_id,
            template_indicator_id=indicator.id,
            indicator_response_id=response.id,
            source=FindingSource.INDICATOR_RESPONSE.value,
            severity=FindingSeverity(response.rating).value,
            finding_text=finding_text_for(indicator.indicator_text, response.comment),
            status=FindingStatus.OPEN.value,
            created_by=actor_id,
        )
        self.session.add(finding)
        response.status = ResponseStatus.OPEN.value
        self.session.flush()

        self.add_activity(finding, ActivityType.CREATED,
                          f"Finding raised from indicator rating {response.rating}", actor_id)
        self.trail.log_change(
            response.company_id, actor_id, 'FINDING_CREATED', 'finding', finding.id,
            after={'severity': finding.severity, 'audit_id': finding.audit_id,
                   'template_indicator_id': finding.template_indicator_id}
        )

        logger.info(
            f"Created {finding.severity} finding {finding.id} for audit {finding.audit_id}"
        )
        return finding

    def create_finding(
        self,
        company_id: str,
        actor_id: str,
        severity: FindingSeverity,
        finding_text: str,
        audit_id: Optional[str] = None,
        template_indicator_id: Optional[str] = None,
        source_document_review_id: Optional[str] = None,
    ) -> Finding:
        """Raise a finding from a confirmed document review suggestion."""
        finding = Finding(
            company_id=company_id,
            audit_id=audit_id,
            template_indicator_id=template_indicator_id,
            source=FindingSource.DOCUMENT_REVIEW.value,
            source_document_review_id=source_document_review_id,
            severity=FindingSeverity(severity).value,
            finding_text=finding_text,
            status=FindingStatus.OPEN.value,
            created_by=actor_id,
        )
        self.session.add(finding)
        self.session.flush()

        self.add_activity(finding, ActivityType.CREATED,
                          "Finding raised from confirmed document review suggestion", actor_id)
        self.trail.log_change(
            company_id, actor_id, 'FINDING_CREATED', 'finding', finding.id,
            after={'severity': finding.severity, 'source': finding.source,
                   'source_document_review_id': source_document_review_id}
        )

        logger.info(f"Created {finding.severity} finding {finding.id} from document review")
        return finding

    def realign_severity(self, finding: Finding, severity: FindingSeverity,
                         actor_id: str, reason: str) -> Finding:
        """Follow a re-rated response to a different non-conformity level."""
        severity = FindingSeverity(severity)
        if finding.severity == severity.value:
            return finding

        before = finding.severity
        finding.severity = severity.value
        self.session.flush()

        self.add_activity(finding, ActivityType.COMMENT_ADDED,
                          f"Severity changed from {before} to {severity.value}: {reason}",
                          actor_id)
        self.trail.log_change(
            finding.company_id, actor_id, 'FINDING_SEVERITY_CHANGED', 'finding', finding.id,
            before={'severity': before}, after={'severity': severity.value}
        )
        return finding

    # Queries

    def get_finding(self, actor: Actor, finding_id: str) -> Finding:
        return fetch_for_company(self.session, Finding, finding_id, actor.company_id, "Finding")

    def get_activity(self, actor: Actor, finding_id: str) -> List[FindingActivity]:
        finding = self.get_finding(actor, finding_id)
        return self.session.query(FindingActivity).filter(
            FindingActivity.finding_id == finding.id
        ).order_by(FindingActivity.created_at, FindingActivity.id).all()

    def list_findings(
        self,
        actor: Actor,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        audit_id: Optional[str] = None,
    ) -> List[Finding]:
        query = self.session.query(Finding).filter(Finding.company_id == actor.company_id)
        if status:
            status = parse_enum(FindingStatus, status, 'status')
            query = query.filter(Finding.status == status.value)
        if severity:
            severity = parse_enum(FindingSeverity, severity, 'severity')
            query = query.filter(Finding.severity == severity.value)
        if audit_id:
            query = query.filter(Finding.audit_id == audit_id)
        return query.order_by(Finding.created_at.desc()).all()

    def latest_for_indicator(self, audit_id: str, indicator_id: str) -> Optional[Finding]:
        """Most recent finding raised from this indicator's response."""
        return self.session.query(Finding).filter(
            Finding.audit_id == audit_id,
            Finding.template_indicator_id == indicator_id,
            Finding.source == FindingSource.INDICATOR_RESPONSE.value
        ).order_by(Finding.created_at.desc()).first()

    # Mutation

    def update_finding(
        self,
        actor: Actor,
        finding_id: str,
        owner_id: Any = _UNSET,
        due_date: Any = _UNSET,
        status: Optional[str] = None,
        closure_note: Optional[str] = None,
    ) -> Finding:
        """
        Update owner, due date and/or status.

        Each changed attribute appends its own activity entry.
        """
        require_role(actor, CONTRIBUTORS, "update findings")
        finding = self.get_finding(actor, finding_id)

        if owner_id is not _UNSET and owner_id != finding.owner_id:
            before = finding.owner_id
            finding.owner_id = owner_id
            self.add_activity(finding, ActivityType.OWNER_ASSIGNED,
                              f"Owner set to {owner_id}" if owner_id else "Owner cleared",
                              actor.user_id)
            self.trail.log_change(actor.company_id, actor.user_id, 'FINDING_OWNER_ASSIGNED',
                                  'finding', finding.id,
                                  before={'owner_id': before}, after={'owner_id': owner_id})

        if due_date is not _UNSET and due_date != finding.due_date:
            if due_date is not None and not isinstance(due_date, date):
                raise ValidationError("due_date must be a date")
            before = finding.due_date
            finding.due_date = due_date
            self.add_activity(finding, ActivityType.DUE_DATE_SET,
                              f"Due date set to {due_date.isoformat()}" if due_date
                              else "Due date cleared",
                              actor.user_id)
            self.trail.log_change(actor.company_id, actor.user_id, 'FINDING_DUE_DATE_SET',
                                  'finding', finding.id,
                                  before={'due_date': before.isoformat() if before else None},
                                  after={'due_date': due_date.isoformat() if due_date else None})

        self.session.flush()

        if status is not None:
            target = parse_enum(FindingStatus, status, 'status')
            if target.value != finding.status:
                self._change_status(actor, finding, target, closure_note)

        return finding

    def close_finding(self, actor: Actor, finding_id: str, closure_note: Optional[str]) -> Finding:
        """Close a finding. MAJOR_NC findings need a closure note."""
        finding = self.get_finding(actor, finding_id)
        return self._change_status(actor, finding, FindingStatus.CLOSED, closure_note)

    def add_comment(self, actor: Actor, finding_id: str, text: str) -> FindingActivity:
        require_role(actor, CONTRIBUTORS, "comment on findings")
        if not text or not text.strip():
            raise ValidationError("Comment text is required")
        finding = self.get_finding(actor, finding_id)
        return self.add_activity(finding, ActivityType.COMMENT_ADDED, text.strip(), actor.user_id)

    def close_on_accepted_evidence(self, finding: Finding, actor_id: str,
                                   note: Optional[str]) -> Finding:
        """Close a finding because evidence against it was accepted."""
        if finding.status == FindingStatus.CLOSED.value:
            return finding
        self._apply_status(finding, FindingStatus.CLOSED, actor_id,
                           note or "Evidence accepted")
        return finding

    def add_activity(self, finding: Finding, activity_type: ActivityType,
                     message: str, actor_id: Optional[str]) -> FindingActivity:
        """Append to a finding's history."""
        activity = FindingActivity(
            company_id=finding.company_id,
            finding_id=finding.id,
            activity_type=ActivityType(activity_type).value,
            message=message,
            actor_id=actor_id,
        )
        self.session.add(activity)
        self.session.flush()
        return activity

    def _change_status(self, actor: Actor, finding: Finding, target: FindingStatus,
                       closure_note: Optional[str]) -> Finding:
        current = FindingStatus(finding.status)
        if (current, target) not in STATUS_TRANSITIONS:
            raise InvalidState(
                f"Cannot move finding from {current.value} to {target.value}",
                {'current_status': current.value, 'requested_status': target.value}
            )

        if target == FindingStatus.CLOSED or current == FindingStatus.CLOSED:
            require_role(actor, FINDING_CLOSERS, "close or reopen findings")
        else:
            require_role(actor, CONTRIBUTORS, "change finding status")

        note = closure_note.strip() if closure_note else None
        if target == FindingStatus.CLOSED and finding.severity == FindingSeverity.MAJOR_NC.value \
                and not note:
            raise ValidationError("A closure note is required to close a major non-conformity")

        self._apply_status(finding, target, actor.user_id, note)
        return finding

    def _apply_status(self, finding: Finding, target: FindingStatus,
                      actor_id: str, note: Optional[str]) -> None:
        current = FindingStatus(finding.status)
        values: Dict[str, Any] = {'status': target.value}
        if target == FindingStatus.CLOSED:
            values.update(closure_note=note, closed_at=datetime.utcnow(), closed_by=actor_id)
        elif current == FindingStatus.CLOSED:
            values.update(closure_note=None, closed_at=None, closed_by=None)

        compare_and_set_status(self.session, finding, current.value, values)

        activity_type = STATUS_TRANSITIONS.get((current, target), ActivityType.STATUS_CHANGED)
        message = f"Status changed from {current.value} to {target.value}"
        if note and target == FindingStatus.CLOSED:
            message += f": {note}"
        self.add_activity(finding, activity_type, message, actor_id)

        if finding.indicator_response_id:
            response = self.session.get(IndicatorResponse, finding.indicator_response_id)
            if response is not None:
                response.status = (
                    ResponseStatus.CLOSED.value if target == FindingStatus.CLOSED
                    else ResponseStatus.OPEN.value
                )

        self.trail.log_change(
            finding.company_id, actor_id, f"FINDING_{activity_type.value}", 'finding', finding.id,
            before={'status': current.value}, after={'status': target.value, 'closure_note': note}
        )
        logger.info(f"Finding {finding.id}: {current.value} -> {target.value}")
