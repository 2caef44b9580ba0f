"""
Indicator Response Service.

Handles:
- Recording one rating per template indicator per audit
- Filling gaps while the audit is under review
- Re-rating during assessment, keeping findings in step
- Lead-auditor review comments
- Audit score and progress
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit_engine.config import Config
from audit_engine.errors import Conflict, InvalidState, NotFound, ValidationError
from audit_engine.models.audit import Audit, AuditStatus, IndicatorResponse, Rating
from audit_engine.models.catalogue import TemplateIndicator
from audit_engine.models.findings import ActivityType, FindingSeverity, FindingStatus
from audit_engine.services.access_control import (
    Actor, IN_REVIEW_RESPONDERS, LEAD_AUDITOR, SCOPE_AND_CLOSE, require_role
)
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.finding_service import FindingService
from audit_engine.services.guards import fetch_for_company, parse_enum
from audit_engine.services.scoring import CURRENT_SCORE_VERSION, points_for, score_percent

logger = logging.getLogger(__name__)


def comment_min_length() -> int:
    if has_app_context():
        return current_app.config.get('COMMENT_MIN_LENGTH', Config.COMMENT_MIN_LENGTH)
    return Config.COMMENT_MIN_LENGTH


class ResponseService:
    """Indicator response recorder."""

    def __init__(self, session: Session):
        self.session = session
        self.findings = FindingService(session)
        self.trail = AuditTrailService(session)

    def record_response(
        self,
        actor: Actor,
        audit_id: str,
        indicator_id: str,
        rating: str,
        comment: Optional[str] = None,
    ) -> IndicatorResponse:
        """
        Record the rating for one indicator while the audit is IN_PROGRESS.

        A non-conformity raises a finding in the same transaction.
        """
        require_role(actor, SCOPE_AND_CLOSE, "record indicator responses")
        return self._create(actor, audit_id, indicator_id, rating, comment,
                            AuditStatus.IN_PROGRESS)

    def add_response_in_review(
        self,
        actor: Actor,
        audit_id: str,
        indicator_id: str,
        rating: str,
        comment: Optional[str] = None,
    ) -> IndicatorResponse:
        """Fill an unanswered indicator while the audit is IN_REVIEW."""
        require_role(actor, IN_REVIEW_RESPONDERS, "add responses during review")
        return self._create(actor, audit_id, indicator_id, rating, comment,
                            AuditStatus.IN_REVIEW)

    def update_response(
        self,
        actor: Actor,
        audit_id: str,
        indicator_id: str,
        rating: str,
        comment: Optional[str] = None,
    ) -> IndicatorResponse:
        """
        Re-rate an existing response while the audit is IN_PROGRESS.

        Points are recomputed with the current score version. Findings are
        never deleted or closed here: a move to conformity only leaves a
        note on the finding for a human to act on.
        """
        require_role(actor, SCOPE_AND_CLOSE, "update indicator responses")
        audit = self._audit_in(actor, audit_id, AuditStatus.IN_PROGRESS)
        indicator = self._indicator_for(audit, indicator_id)
        rating = self._validate(rating, comment)

        response = IndicatorResponse.get_for_indicator(self.session, audit.id, indicator.id)
        if response is None:
            raise NotFound("No response recorded for this indicator",
                           {'template_indicator_id': indicator.id})

        before = {'rating': response.rating, 'score_points': response.score_points,
                  'score_version': response.score_version}
        response.rating = rating.value
        response.comment = comment
        response.score_points = points_for(rating)
        response.score_version = CURRENT_SCORE_VERSION
        response.updated_by = actor.user_id
        self.session.flush()

        finding = self.findings.latest_for_indicator(audit.id, indicator.id)
        if rating.is_nonconformity:
            if finding is None or finding.status == FindingStatus.CLOSED.value:
                self.findings.create_from_response(actor.user_id, response, indicator)
            else:
                self.findings.realign_severity(
                    finding, FindingSeverity(rating.value), actor.user_id,
                    "indicator re-rated"
                )
        elif finding is not None and finding.status != FindingStatus.CLOSED.value:
            self.findings.add_activity(
                finding, ActivityType.COMMENT_ADDED,
                f"Indicator response corrected from {before['rating']} to {rating.value}; "
                f"finding left open for review",
                actor.user_id
            )

        self.trail.log_change(
            actor.company_id, actor.user_id, 'INDICATOR_RESPONSE_UPDATED',
            'indicator_response', response.id,
            before=before,
            after={'rating': response.rating, 'score_points': response.score_points,
                   'score_version': response.score_version}
        )
        logger.info(f"Response {response.id} re-rated {before['rating']} -> {rating.value}")
        return response

    def add_review_comment(self, actor: Actor, audit_id: str, response_id: str,
                           comment: str) -> IndicatorResponse:
        """Lead-auditor comment on a non-conformity while the audit is IN_REVIEW."""
        require_role(actor, LEAD_AUDITOR, "add review comments")
        audit = self._audit_in(actor, audit_id, AuditStatus.IN_REVIEW)

        response = fetch_for_company(self.session, IndicatorResponse, response_id,
                                     actor.company_id, "Indicator response")
        if response.audit_id != audit.id:
            raise NotFound("Indicator response not found", {'id': response_id})
        if not response.is_nonconformity:
            raise ValidationError("Review comments can only be added to non-conformity ratings",
                                  {'rating': response.rating})
        if not comment or not comment.strip():
            raise ValidationError("Review comment is required")

        response.review_comment = comment.strip()
        response.review_comment_by = actor.user_id
        response.review_comment_at = datetime.utcnow()
        self.session.flush()

        self.trail.log_change(
            actor.company_id, actor.user_id, 'REVIEW_COMMENT_ADDED',
            'indicator_response', response.id, after={'review_comment': response.review_comment}
        )
        return response

    def audit_score(self, actor: Actor, audit_id: str) -> Dict[str, Any]:
        """
        Aggregate score for an audit.

        Unanswered indicators are excluded, not penalised. With no
        responses the score is None.
        """
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        responses = self.session.query(IndicatorResponse).filter(
            IndicatorResponse.audit_id == audit.id
        ).all()

        counts = {rating.value: 0 for rating in Rating}
        for response in responses:
            counts[response.rating] += 1

        total_indicators = 0
        if audit.template_id:
            total_indicators = self.session.query(TemplateIndicator).filter(
                TemplateIndicator.template_id == audit.template_id
            ).count()

        return {
            'audit_id': audit.id,
            'score_percent': score_percent(
                (r.score_points, r.score_version) for r in responses
            ),
            'points_earned': sum(r.score_points for r in responses),
            'responses': len(responses),
            'total_indicators': total_indicators,
            'rating_counts': counts,
            'nonconformities': counts[Rating.MAJOR_NC.value] + counts[Rating.MINOR_NC.value],
        }

    def list_responses(self, actor: Actor, audit_id: str) -> List[IndicatorResponse]:
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        return self.session.query(IndicatorResponse).filter(
            IndicatorResponse.audit_id == audit.id
        ).order_by(IndicatorResponse.created_at).all()

    def list_outcomes(self, actor: Actor, rating: Optional[str] = None,
                      audit_id: Optional[str] = None) -> List[IndicatorResponse]:
        """Responses across the company's audits, newest first."""
        query = self.session.query(IndicatorResponse).filter(
            IndicatorResponse.company_id == actor.company_id
        )
        if rating:
            query = query.filter(
                IndicatorResponse.rating == parse_enum(Rating, rating, 'rating').value
            )
        if audit_id:
            audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
            query = query.filter(IndicatorResponse.audit_id == audit.id)
        return query.order_by(IndicatorResponse.created_at.desc()).all()

    def _create(self, actor: Actor, audit_id: str, indicator_id: str, rating: str,
                comment: Optional[str], required_status: AuditStatus) -> IndicatorResponse:
        audit = self._audit_in(actor, audit_id, required_status)
        indicator = self._indicator_for(audit, indicator_id)
        rating = self._validate(rating, comment)

        response = IndicatorResponse(
            company_id=actor.company_id,
            audit_id=audit.id,
            template_indicator_id=indicator.id,
            rating=rating.value,
            comment=comment,
            score_points=points_for(rating),
            score_version=CURRENT_SCORE_VERSION,
            created_by=actor.user_id,
        )

        duplicate = Conflict(
            "A response already exists for this indicator; use the update path instead",
            {'template_indicator_id': indicator.id}
        )
        if IndicatorResponse.get_for_indicator(self.session, audit.id, indicator.id):
            raise duplicate

        # The unique constraint settles concurrent inserts the check above missed
        try:
            with self.session.begin_nested():
                self.session.add(response)
        except IntegrityError:
            logger.warning(f"Duplicate response for audit {audit.id} indicator {indicator.id}")
            raise duplicate

        if rating.is_nonconformity:
            self.findings.create_from_response(actor.user_id, response, indicator)

        self.trail.log_change(
            actor.company_id, actor.user_id, 'INDICATOR_RESPONSE_RECORDED',
            'indicator_response', response.id,
            after={'template_indicator_id': indicator.id, 'rating': response.rating,
                   'score_points': response.score_points,
                   'score_version': response.score_version,
                   'audit_status': required_status.value}
        )
        logger.info(f"Recorded {rating.value} for indicator {indicator.id} on audit {audit.id}")
        return response

    def _audit_in(self, actor: Actor, audit_id: str, status: AuditStatus) -> Audit:
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        if audit.status != status.value:
            raise InvalidState(
                f"Audit must be {status.value} for this action",
                {'current_status': audit.status}
            )
        return audit

    def _indicator_for(self, audit: Audit, indicator_id: str) -> TemplateIndicator:
        indicator = self.session.get(TemplateIndicator, indicator_id)
        if indicator is None or indicator.template_id != audit.template_id:
            raise NotFound("Indicator not found in this audit's template",
                           {'template_indicator_id': indicator_id})
        return indicator

    def _validate(self, rating: str, comment: Optional[str]) -> Rating:
        try:
            rating = Rating(rating)
        except ValueError:
            raise ValidationError(
                f"Unknown rating {rating!r}",
                {'allowed_ratings': [r.value for r in Rating]}
            )

        min_length = comment_min_length()
        if rating.is_nonconformity and len(comment or '') < min_length:
            raise ValidationError(
                f"A comment is required for non-conformity ratings; "
                f"provide at least {min_length} characters",
                {'field': 'comment', 'min_length': min_length}
            )
        return rating
