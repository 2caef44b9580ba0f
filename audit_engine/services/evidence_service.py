"""
Evidence Service - request, submission and review of evidence.

Lifecycle:
    REQUESTED -> SUBMITTED -> UNDER_REVIEW -> ACCEPTED | REJECTED
    REJECTED  -> SUBMITTED (new item uploaded)

Uploads arrive either from an internal user or through the public portal
token; both create the same EvidenceItem and differ only in who is
recorded as the uploader.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
import logging
import secrets

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from audit_engine.config import Config
from audit_engine.errors import InvalidState, NotFound, ValidationError
from audit_engine.models.audit import Audit
from audit_engine.models.catalogue import TemplateIndicator
from audit_engine.models.changelog import ActorType
from audit_engine.models.evidence import (
    EvidenceItem, EvidenceItemKind, EvidenceRequest, EvidenceStatus, EvidenceType
)
from audit_engine.models.findings import ActivityType, Finding
from audit_engine.services.access_control import (
    Actor, CONTRIBUTORS, EVIDENCE_REVIEWERS, require_role
)
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.finding_service import FindingService
from audit_engine.services.guards import (
    compare_and_set_status, fetch_for_company, parse_enum
)

logger = logging.getLogger(__name__)

SUBMITTABLE = (EvidenceStatus.REQUESTED, EvidenceStatus.SUBMITTED, EvidenceStatus.REJECTED)


@dataclass
class SubmittedItem:
    """Storage reference handed over by the storage collaborator."""
    item_kind: str = EvidenceItemKind.UPLOAD.value
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size_bytes: Optional[int] = None
    external_url: Optional[str] = None
    note: Optional[str] = None


def public_token_bytes() -> int:
    if has_app_context():
        return current_app.config.get('PUBLIC_TOKEN_BYTES', Config.PUBLIC_TOKEN_BYTES)
    return Config.PUBLIC_TOKEN_BYTES


class EvidenceService:
    """Evidence request and review service."""

    def __init__(self, session: Session):
        self.session = session
        self.findings = FindingService(session)
        self.trail = AuditTrailService(session)

    def request_evidence(
        self,
        actor: Actor,
        evidence_type: str,
        request_note: str,
        due_date: Optional[date] = None,
        audit_id: Optional[str] = None,
        finding_id: Optional[str] = None,
        template_indicator_id: Optional[str] = None,
    ) -> EvidenceRequest:
        """
        Create an evidence request.

        May be standalone, linked to an audit, or linked to a finding (which
        implies the finding's audit). Linkage never changes the lifecycle.
        """
        require_role(actor, EVIDENCE_REVIEWERS, "request evidence")

        try:
            evidence_type = EvidenceType(evidence_type)
        except ValueError:
            raise ValidationError(f"Unknown evidence type {evidence_type!r}",
                                  {'allowed_types': [t.value for t in EvidenceType]})
        if not request_note or not request_note.strip():
            raise ValidationError("A request note is required")

        finding = None
        if finding_id:
            finding = fetch_for_company(self.session, Finding, finding_id,
                                        actor.company_id, "Finding")
            if audit_id and finding.audit_id and audit_id != finding.audit_id:
                raise ValidationError("Finding belongs to a different audit")
            audit_id = finding.audit_id
            template_indicator_id = template_indicator_id or finding.template_indicator_id
        if audit_id:
            fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        if template_indicator_id and self.session.get(TemplateIndicator,
                                                      template_indicator_id) is None:
            raise NotFound("Indicator not found", {'template_indicator_id': template_indicator_id})

        request = EvidenceRequest(
            company_id=actor.company_id,
            audit_id=audit_id,
            finding_id=finding.id if finding else None,
            template_indicator_id=template_indicator_id,
            evidence_type=evidence_type.value,
            request_note=request_note.strip(),
            status=EvidenceStatus.REQUESTED.value,
            due_date=due_date,
            public_token=secrets.token_hex(public_token_bytes()),
            requested_by=actor.user_id,
        )
        self.session.add(request)
        self.session.flush()

        if finding is not None:
            self.findings.add_activity(finding, ActivityType.EVIDENCE_REQUESTED,
                                       f"Evidence requested: {evidence_type.value}",
                                       actor.user_id)

        self.trail.log_change(
            actor.company_id, actor.user_id, 'EVIDENCE_REQUESTED', 'evidence_request', request.id,
            after={'evidence_type': evidence_type.value, 'audit_id': audit_id,
                   'finding_id': request.finding_id,
                   'template_indicator_id': template_indicator_id,
                   'standalone': not (audit_id or request.finding_id)}
        )
        logger.info(f"Evidence request {request.id} created ({evidence_type.value})")
        return request

    def submit_evidence(self, actor: Actor, request_id: str, item: SubmittedItem) -> EvidenceItem:
        """Internal upload by an authenticated company user."""
        require_role(actor, CONTRIBUTORS, "submit evidence")
        request = fetch_for_company(self.session, EvidenceRequest, request_id,
                                    actor.company_id, "Evidence request")
        return self._submit(request, item, uploaded_by=actor.user_id)

    def submit_evidence_by_token(self, token: str, item: SubmittedItem,
                                 uploader_name: str, uploader_email: str) -> EvidenceItem:
        """External upload through the public portal token."""
        request = EvidenceRequest.get_by_token(self.session, token) if token else None
        if request is None:
            raise NotFound("Evidence request not found")
        if not uploader_name or not uploader_name.strip():
            raise ValidationError("Uploader name is required")
        if not uploader_email or '@' not in uploader_email:
            raise ValidationError("A valid uploader email is required")
        return self._submit(request, item, uploader_name=uploader_name.strip(),
                            uploader_email=uploader_email.strip())

    def start_review(self, actor: Actor, request_id: str) -> EvidenceRequest:
        """Reviewer opens a submitted request."""
        require_role(actor, EVIDENCE_REVIEWERS, "review evidence")
        request = fetch_for_company(self.session, EvidenceRequest, request_id,
                                    actor.company_id, "Evidence request")
        if request.status != EvidenceStatus.SUBMITTED.value:
            raise InvalidState("Only submitted evidence can be taken into review",
                               {'current_status': request.status})

        compare_and_set_status(self.session, request, EvidenceStatus.SUBMITTED.value,
                               {'status': EvidenceStatus.UNDER_REVIEW.value})

        self.trail.log_change(
            actor.company_id, actor.user_id, 'EVIDENCE_REVIEW_STARTED', 'evidence_request',
            request.id, before={'status': EvidenceStatus.SUBMITTED.value},
            after={'status': EvidenceStatus.UNDER_REVIEW.value}
        )
        return request

    def review_evidence(self, actor: Actor, request_id: str, decision: str,
                        review_note: Optional[str] = None) -> EvidenceRequest:
        """
        Accept or reject evidence under review.

        Accepting evidence on a finding-linked request closes the finding.
        """
        require_role(actor, EVIDENCE_REVIEWERS, "review evidence")
        request = fetch_for_company(self.session, EvidenceRequest, request_id,
                                    actor.company_id, "Evidence request")

        try:
            target = EvidenceStatus(decision)
        except ValueError:
            target = None
        if target not in (EvidenceStatus.ACCEPTED, EvidenceStatus.REJECTED):
            raise ValidationError("Decision must be ACCEPTED or REJECTED")
        if request.status != EvidenceStatus.UNDER_REVIEW.value:
            raise InvalidState("Evidence must be under review before final decision",
                               {'current_status': request.status})

        note = review_note.strip() if review_note else None
        compare_and_set_status(self.session, request, EvidenceStatus.UNDER_REVIEW.value, {
            'status': target.value,
            'reviewed_by': actor.user_id,
            'reviewed_at': datetime.utcnow(),
            'review_note': note,
        })

        if request.finding_id:
            finding = self.session.get(Finding, request.finding_id)
            self.findings.add_activity(finding, ActivityType.EVIDENCE_REVIEWED,
                                       f"Evidence {target.value.lower()}"
                                       + (f": {note}" if note else ""),
                                       actor.user_id)
            if target == EvidenceStatus.ACCEPTED:
                self.findings.close_on_accepted_evidence(finding, actor.user_id, note)

        self.trail.log_change(
            actor.company_id, actor.user_id, f"EVIDENCE_{target.value}", 'evidence_request',
            request.id, before={'status': EvidenceStatus.UNDER_REVIEW.value},
            after={'status': target.value, 'review_note': note}
        )
        logger.info(f"Evidence request {request.id} {target.value}")
        return request

    def get_request(self, actor: Actor, request_id: str) -> EvidenceRequest:
        return fetch_for_company(self.session, EvidenceRequest, request_id,
                                 actor.company_id, "Evidence request")

    def get_item(self, actor: Actor, item_id: str) -> EvidenceItem:
        return fetch_for_company(self.session, EvidenceItem, item_id,
                                 actor.company_id, "Evidence item")

    def list_requests(self, actor: Actor, status: Optional[str] = None,
                      audit_id: Optional[str] = None,
                      finding_id: Optional[str] = None) -> List[EvidenceRequest]:
        query = self.session.query(EvidenceRequest).filter(
            EvidenceRequest.company_id == actor.company_id
        )
        if status:
            status = parse_enum(EvidenceStatus, status, 'status')
            query = query.filter(EvidenceRequest.status == status.value)
        if audit_id:
            query = query.filter(EvidenceRequest.audit_id == audit_id)
        if finding_id:
            query = query.filter(EvidenceRequest.finding_id == finding_id)
        return query.order_by(EvidenceRequest.created_at.desc()).all()

    def _submit(self, request: EvidenceRequest, item: SubmittedItem,
                uploaded_by: Optional[str] = None, uploader_name: Optional[str] = None,
                uploader_email: Optional[str] = None) -> EvidenceItem:
        current = EvidenceStatus(request.status)
        if current not in SUBMITTABLE:
            raise InvalidState(f"Evidence cannot be submitted while {current.value}",
                               {'current_status': current.value})
        self._validate_item(item)

        evidence_item = EvidenceItem(
            company_id=request.company_id,
            evidence_request_id=request.id,
            item_kind=EvidenceItemKind(item.item_kind).value,
            file_path=item.file_path,
            file_name=item.file_name,
            mime_type=item.mime_type,
            file_size_bytes=item.file_size_bytes,
            external_url=item.external_url,
            note=item.note,
            uploaded_by=uploaded_by,
            uploader_name=uploader_name,
            uploader_email=uploader_email,
        )
        self.session.add(evidence_item)

        compare_and_set_status(self.session, request, current.value, {
            'status': EvidenceStatus.SUBMITTED.value,
            'submitted_at': datetime.utcnow(),
        })

        if request.finding_id:
            finding = self.session.get(Finding, request.finding_id)
            self.findings.add_activity(
                finding, ActivityType.EVIDENCE_SUBMITTED,
                f"Evidence submitted by {uploaded_by or uploader_name}",
                uploaded_by
            )

        self.trail.log_change(
            request.company_id, uploaded_by or uploader_email, 'EVIDENCE_SUBMITTED',
            'evidence_request', request.id,
            before={'status': current.value},
            after={'status': EvidenceStatus.SUBMITTED.value, 'evidence_item_id': evidence_item.id},
            actor_type=ActorType.COMPANY_USER if uploaded_by else ActorType.EXTERNAL_UPLOADER
        )
        logger.info(f"Evidence item {evidence_item.id} submitted for request {request.id}")
        return evidence_item

    def _validate_item(self, item: SubmittedItem) -> None:
        try:
            kind = EvidenceItemKind(item.item_kind)
        except ValueError:
            raise ValidationError("Item kind must be UPLOAD or LINK")

        if kind == EvidenceItemKind.UPLOAD:
            if not item.file_path or not item.mime_type:
                raise ValidationError("Uploads need a file path and mime type",
                                      {'fields': ['file_path', 'mime_type']})
            if item.file_size_bytes is not None and item.file_size_bytes < 0:
                raise ValidationError("File size cannot be negative")
        elif not item.external_url:
            raise ValidationError("Links need an external URL", {'fields': ['external_url']})
