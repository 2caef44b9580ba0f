"""
Document Review Service.

Handles:
- Checklist reviews of submitted evidence items (DQS, critical failures)
- Emitting suggested findings from review signals
- Confirming or dismissing suggestions (exactly once, by a human)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from audit_engine.config import Config
from audit_engine.errors import Conflict, InvalidState, ValidationError
from audit_engine.models.audit import Audit
from audit_engine.models.document_review import (
    ChecklistAnswer, ConfirmationType, DocumentChecklistTemplate, DocumentReview,
    ReviewDecision, SuggestedFinding, SuggestedType, SuggestionStatus
)
from audit_engine.models.evidence import EvidenceItem, EvidenceRequest, EvidenceType
from audit_engine.models.findings import FindingSeverity
from audit_engine.services.access_control import Actor, EVIDENCE_REVIEWERS, require_role
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.finding_service import FindingService
from audit_engine.services.guards import compare_and_set_status, fetch_for_company
from audit_engine.services.scoring import round_half_up
from audit_engine.services.suggestion_engine import SuggestionThresholds, evaluate_review

logger = logging.getLogger(__name__)

DESCRIPTION_MIN_LENGTH = 10


def current_thresholds() -> SuggestionThresholds:
    if has_app_context():
        return SuggestionThresholds.from_config(current_app.config)
    return SuggestionThresholds(
        minor_dqs_below=Config.SUGGESTION_MINOR_DQS_BELOW,
        major_dqs_below=Config.SUGGESTION_MAJOR_DQS_BELOW,
    )


def document_quality(answers: List[ChecklistAnswer]) -> Tuple[int, bool]:
    """
    DQS over scorable (non-NA) items: YES count / scorable count, as a
    rounded percentage. Returns (dqs_percent, needs_manual_review); an
    all-NA checklist scores 0 and is flagged for manual handling.
    """
    scorable = [a for a in answers if a != ChecklistAnswer.NA]
    if not scorable:
        return 0, True
    yes = sum(1 for a in scorable if a == ChecklistAnswer.YES)
    return round_half_up(yes / len(scorable) * 100), False


class DocumentReviewService:
    """Document checklist review and suggested findings."""

    def __init__(self, session: Session, thresholds: Optional[SuggestionThresholds] = None):
        self.session = session
        self.thresholds = thresholds
        self.findings = FindingService(session)
        self.trail = AuditTrailService(session)

    def submit_review(
        self,
        actor: Actor,
        evidence_item_id: str,
        checklist_template_id: str,
        responses: List[Dict[str, Any]],
        decision: str,
        justification: Optional[str] = None,
        audit_id: Optional[str] = None,
    ) -> Tuple[DocumentReview, Optional[SuggestedFinding]]:
        """
        Record a completed checklist review.

        ``responses`` holds one ``{"item_id" | "item_key", "response"}``
        entry per checklist item. The decision is the reviewer's call and
        is never derived from the score.
        """
        require_role(actor, EVIDENCE_REVIEWERS, "review documents")

        item = fetch_for_company(self.session, EvidenceItem, evidence_item_id,
                                 actor.company_id, "Evidence item")
        request = self.session.get(EvidenceRequest, item.evidence_request_id)
        template = self.session.get(DocumentChecklistTemplate, checklist_template_id)
        if template is None:
            raise ValidationError("Checklist template not found",
                                  {'checklist_template_id': checklist_template_id})
        if request.evidence_type not in (EvidenceType.OTHER.value, template.document_type):
            raise ValidationError(
                "Checklist does not match the requested document type",
                {'evidence_type': request.evidence_type,
                 'checklist_document_type': template.document_type}
            )

        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError("Decision must be ACCEPT or REJECT")

        audit_id = audit_id or request.audit_id
        if audit_id:
            fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")

        normalized = self._match_responses(template, responses)
        answers = [ChecklistAnswer(r['response']) for r in normalized]
        dqs_percent, needs_manual_review = document_quality(answers)
        critical_failures = sum(
            1 for r in normalized if r['is_critical'] and r['response'] == ChecklistAnswer.NO.value
        )

        review = DocumentReview(
            company_id=actor.company_id,
            evidence_item_id=item.id,
            evidence_request_id=request.id,
            audit_id=audit_id,
            checklist_template_id=template.id,
            responses=normalized,
            dqs_percent=dqs_percent,
            critical_failures_count=critical_failures,
            needs_manual_review=needs_manual_review,
            decision=decision.value,
            justification=justification,
            reviewer_id=actor.user_id,
        )
        self.session.add(review)
        self.session.flush()

        self.trail.log_change(
            actor.company_id, actor.user_id, 'DOCUMENT_REVIEWED', 'evidence_item', item.id,
            after={'review_id': review.id, 'decision': decision.value,
                   'dqs_percent': dqs_percent, 'critical_failures': critical_failures,
                   'needs_manual_review': needs_manual_review}
        )
        logger.info(
            f"Document review {review.id}: dqs={dqs_percent}% "
            f"critical_failures={critical_failures} decision={decision.value}"
        )

        suggestion = self._suggest(review, item, request)
        return review, suggestion

    def confirm_suggested_finding(self, actor: Actor, suggestion_id: str,
                                  finding_type: str, description: str) -> SuggestedFinding:
        """
        Confirm a pending suggestion.

        MAJOR_NC / MINOR_NC raise a real finding and link it; OBSERVATION
        confirms with a note and no finding. The human's type wins over the
        suggested one.
        """
        require_role(actor, EVIDENCE_REVIEWERS, "confirm suggested findings")
        suggestion = self._pending(actor, suggestion_id)

        try:
            confirmation = ConfirmationType(finding_type)
        except ValueError:
            raise ValidationError(
                "Finding type must be MAJOR_NC, MINOR_NC or OBSERVATION",
                {'allowed_types': [t.value for t in ConfirmationType]}
            )
        description = (description or '').strip()
        if len(description) < DESCRIPTION_MIN_LENGTH:
            raise ValidationError(
                f"Description is required; provide at least {DESCRIPTION_MIN_LENGTH} characters",
                {'field': 'description', 'min_length': DESCRIPTION_MIN_LENGTH}
            )

        values: Dict[str, Any] = {
            'status': SuggestionStatus.CONFIRMED.value,
            'confirmed_finding_type': confirmation.value,
            'confirmed_by': actor.user_id,
            'confirmed_at': datetime.utcnow(),
        }
        finding = None
        # Another reviewer may get there first; the savepoint drops the finding with it
        with self.session.begin_nested():
            if confirmation == ConfirmationType.OBSERVATION:
                values['confirmation_note'] = description
            else:
                review = self.session.get(DocumentReview, suggestion.document_review_id)
                request = self.session.get(EvidenceRequest, suggestion.evidence_request_id)
                finding = self.findings.create_finding(
                    company_id=actor.company_id,
                    actor_id=actor.user_id,
                    severity=FindingSeverity(confirmation.value),
                    finding_text=description,
                    audit_id=suggestion.audit_id,
                    template_indicator_id=request.template_indicator_id if request else None,
                    source_document_review_id=review.id,
                )
                values['confirmed_finding_id'] = finding.id

            compare_and_set_status(self.session, suggestion,
                                   SuggestionStatus.PENDING.value, values)

        self.trail.log_change(
            actor.company_id, actor.user_id, 'SUGGESTED_FINDING_CONFIRMED',
            'suggested_finding', suggestion.id,
            before={'status': SuggestionStatus.PENDING.value},
            after={'status': SuggestionStatus.CONFIRMED.value,
                   'finding_type': confirmation.value,
                   'finding_id': finding.id if finding else None}
        )
        logger.info(f"Suggested finding {suggestion.id} confirmed as {confirmation.value}")
        return suggestion

    def dismiss_suggested_finding(self, actor: Actor, suggestion_id: str,
                                  reason: Optional[str] = None) -> SuggestedFinding:
        """Dismiss a pending suggestion. Never raises a finding."""
        require_role(actor, EVIDENCE_REVIEWERS, "dismiss suggested findings")
        suggestion = self._pending(actor, suggestion_id)

        reason = reason.strip() if reason and reason.strip() else None
        compare_and_set_status(self.session, suggestion, SuggestionStatus.PENDING.value, {
            'status': SuggestionStatus.DISMISSED.value,
            'dismissed_by': actor.user_id,
            'dismissed_at': datetime.utcnow(),
            'dismiss_reason': reason,
        })

        self.trail.log_change(
            actor.company_id, actor.user_id, 'SUGGESTED_FINDING_DISMISSED',
            'suggested_finding', suggestion.id,
            before={'status': SuggestionStatus.PENDING.value},
            after={'status': SuggestionStatus.DISMISSED.value, 'reason': reason}
        )
        logger.info(f"Suggested finding {suggestion.id} dismissed")
        return suggestion

    def pending_suggestions(self, actor: Actor,
                            evidence_item_id: Optional[str] = None) -> List[SuggestedFinding]:
        """Banner feed: pending suggestions that actually propose something."""
        query = self.session.query(SuggestedFinding).filter(
            SuggestedFinding.company_id == actor.company_id,
            SuggestedFinding.status == SuggestionStatus.PENDING.value,
            SuggestedFinding.suggested_type != SuggestedType.NONE.value
        )
        if evidence_item_id:
            query = query.filter(SuggestedFinding.evidence_item_id == evidence_item_id)
        return query.order_by(SuggestedFinding.created_at.desc()).all()

    def get_suggestion(self, actor: Actor, suggestion_id: str) -> SuggestedFinding:
        return fetch_for_company(self.session, SuggestedFinding, suggestion_id,
                                 actor.company_id, "Suggested finding")

    def reviews_for_item(self, actor: Actor, evidence_item_id: str) -> List[DocumentReview]:
        item = fetch_for_company(self.session, EvidenceItem, evidence_item_id,
                                 actor.company_id, "Evidence item")
        return self.session.query(DocumentReview).filter(
            DocumentReview.evidence_item_id == item.id
        ).order_by(DocumentReview.created_at.desc()).all()

    def _suggest(self, review: DocumentReview, item: EvidenceItem,
                 request: EvidenceRequest) -> Optional[SuggestedFinding]:
        result = evaluate_review(
            review.dqs_percent,
            review.critical_failures_count,
            ReviewDecision(review.decision),
            needs_manual_review=review.needs_manual_review,
            thresholds=self.thresholds or current_thresholds(),
        )
        if result.is_empty:
            return None

        suggestion = SuggestedFinding(
            company_id=review.company_id,
            document_review_id=review.id,
            evidence_item_id=item.id,
            evidence_request_id=request.id,
            audit_id=review.audit_id,
            suggested_type=result.suggested_type.value,
            severity_flag=result.severity_flag.value,
            rationale=result.rationale,
            status=SuggestionStatus.PENDING.value,
        )
        self.session.add(suggestion)
        self.session.flush()

        self.trail.log_change(
            review.company_id, review.reviewer_id, 'SUGGESTED_FINDING_CREATED',
            'suggested_finding', suggestion.id,
            after={'suggested_type': suggestion.suggested_type,
                   'severity_flag': suggestion.severity_flag,
                   'signals': list(result.signals)}
        )
        logger.info(
            f"Suggested {suggestion.suggested_type} ({suggestion.severity_flag}) "
            f"from review {review.id}"
        )
        return suggestion

    def _pending(self, actor: Actor, suggestion_id: str) -> SuggestedFinding:
        suggestion = self.get_suggestion(actor, suggestion_id)
        if suggestion.status != SuggestionStatus.PENDING.value:
            raise Conflict(
                f"Suggested finding is already {suggestion.status}",
                {'current_status': suggestion.status}
            )
        if suggestion.suggested_type == SuggestedType.NONE.value:
            raise InvalidState("Nothing was suggested for this review")
        return suggestion

    def _match_responses(self, template: DocumentChecklistTemplate,
                         responses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Every checklist item answered exactly once, in checklist order."""
        by_id = {i.id: i for i in template.items}
        by_key = {i.item_key: i for i in template.items}

        answered: Dict[str, str] = {}
        for entry in responses or []:
            if not isinstance(entry, dict) or not all(
                isinstance(entry.get(key), (str, type(None)))
                for key in ('item_id', 'item_key', 'response')
            ):
                raise ValidationError(
                    "Each response must be an object with item_id or item_key and response",
                    {'response': entry}
                )
            checklist_item = by_id.get(entry.get('item_id')) or by_key.get(entry.get('item_key'))
            if checklist_item is None:
                raise ValidationError("Response refers to an item outside this checklist",
                                      {'response': entry})
            if checklist_item.id in answered:
                raise ValidationError("Checklist item answered more than once",
                                      {'item_key': checklist_item.item_key})
            try:
                answered[checklist_item.id] = ChecklistAnswer(entry.get('response')).value
            except ValueError:
                raise ValidationError(
                    "Responses must be YES, NO, PARTLY or NA",
                    {'item_key': checklist_item.item_key}
                )

        missing = [i.item_key for i in template.items if i.id not in answered]
        if missing:
            raise ValidationError("Every checklist item must be answered",
                                  {'missing_item_keys': missing})

        return [
            {
                'item_id': i.id,
                'item_key': i.item_key,
                'is_critical': i.is_critical,
                'response': answered[i.id],
            }
            for i in template.items
        ]
