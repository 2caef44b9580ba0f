"""
End-to-End Scenario Tests.

Full workflows through the service layer:
- Audit from DRAFT through review round-trip to approval
- Document review raising and confirming a suggested finding
"""

from datetime import date

from audit_engine.models import (
    AuditStatus, DocumentChecklistTemplate, Finding, FindingStatus, SuggestionStatus
)
from audit_engine.services import AuditTrailService

from conftest import pdf_item


class TestAuditScenario:
    """Audit lifecycle with one major non-conformity."""

    def test_audit_round_trip(self, session, lifecycle, scope, responses, auditor, admin,
                              catalogue):
        audit = lifecycle.create_audit(auditor, 'INTERNAL', 'Site audit',
                                       date(2026, 7, 1), date(2026, 9, 30))
        assert audit.status == AuditStatus.DRAFT.value

        scope.set_scope_line_items(auditor, audit.id, catalogue.line_item_ids[:1])
        scope.select_template(auditor, audit.id, catalogue.template_id)
        lifecycle.start_audit(auditor, audit.id)
        assert audit.scope_locked is True

        responses.record_response(auditor, audit.id, catalogue.indicator_ids[0],
                                  'MAJOR_NC', 'missing required signage onsite')

        found = session.query(Finding).filter(Finding.audit_id == audit.id).all()
        assert len(found) == 1
        assert found[0].severity == 'MAJOR_NC'
        assert found[0].status == FindingStatus.OPEN.value
        assert responses.audit_score(auditor, audit.id)['score_percent'] == 0

        lifecycle.submit_for_review(auditor, audit.id)
        lifecycle.request_changes(admin, audit.id, "add evidence for indicator A")
        assert audit.status == AuditStatus.IN_PROGRESS.value

        lifecycle.submit_for_review(auditor, audit.id)
        result = lifecycle.approve_audit(admin, audit.id)

        assert result.audit.status == AuditStatus.CLOSED.value
        assert result.audit.approved_at is not None
        assert result.warnings

        trail = AuditTrailService(session)
        actions = [e.action for e in trail.get_entity_history(auditor.company_id, audit.id)]
        assert actions == [
            'AUDIT_CREATED',
            'AUDIT_SCOPE_UPDATED',
            'AUDIT_TEMPLATE_SELECTED',
            'AUDIT_STARTED',
            'AUDIT_SUBMITTED_FOR_REVIEW',
            'AUDIT_CHANGES_REQUESTED',
            'AUDIT_SUBMITTED_FOR_REVIEW',
            'AUDIT_APPROVED',
        ]
        assert trail.verify_chain(auditor.company_id)['valid'] is True


class TestDocumentReviewScenario:
    """Rejected document with a critical failure, confirmed as a major finding."""

    def test_review_to_confirmed_finding(self, session, evidence, reviews, auditor, reviewer,
                                         catalogue):
        request = evidence.request_evidence(auditor, 'POLICY', "Incident management policy")
        item = evidence.submit_evidence(auditor, request.id, pdf_item())
        checklist = DocumentChecklistTemplate.active_for_type(session, 'POLICY')

        overrides = {'POL_C1': 'NO', 'POL_H4': 'NA', 'POL_I4': 'NA'}
        review, suggestion = reviews.submit_review(
            reviewer, item.id, checklist.id,
            [{'item_id': i.id, 'response': overrides.get(i.item_key, 'YES')}
             for i in checklist.items],
            'REJECT', "Does not reference current practice standards"
        )

        # 7 YES out of 8 scorable items
        assert review.dqs_percent == 88
        assert review.critical_failures_count == 1
        assert suggestion.suggested_type == 'MAJOR_NC'
        assert suggestion.status == SuggestionStatus.PENDING.value

        reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC',
                                          "Policy does not align with practice standards")

        assert suggestion.status == SuggestionStatus.CONFIRMED.value
        assert suggestion.confirmed_finding_id is not None
        finding = session.get(Finding, suggestion.confirmed_finding_id)
        assert finding.severity == 'MAJOR_NC'
        assert finding.status == FindingStatus.OPEN.value
