"""
Document Review Tests.

Tests for:
- Checklist answer matching and DQS
- Suggested findings from review signals
- Confirm (with finding / as observation) and dismiss
- Immutability of reviews and the suggestion outcome constraint
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from audit_engine.errors import Conflict, Forbidden, ValidationError
from audit_engine.models import (
    DocumentChecklistTemplate, DocumentReview, Finding, SuggestedFinding, SuggestionStatus
)
from audit_engine.services.checklist_catalog import CHECKLIST_TEMPLATES, seed_checklist_templates

from conftest import pdf_item


def answers(template, default='YES', **overrides):
    """One answer per checklist item, keyed by item_key."""
    return [
        {'item_key': item.item_key, 'response': overrides.get(item.item_key, default)}
        for item in template.items
    ]


@pytest.fixture
def policy_checklist(session, catalogue):
    return DocumentChecklistTemplate.active_for_type(session, 'POLICY')


@pytest.fixture
def policy_item(evidence, auditor, catalogue):
    request = evidence.request_evidence(auditor, 'POLICY', "Current incident management policy")
    return evidence.submit_evidence(auditor, request.id, pdf_item())


@pytest.fixture
def rejected_review(reviews, reviewer, policy_checklist, policy_item):
    """A REJECT review with one critical failure, leaving a pending suggestion."""
    return reviews.submit_review(
        reviewer, policy_item.id, policy_checklist.id,
        answers(policy_checklist, POL_C1='NO'), 'REJECT', "Outdated legislation references"
    )


class TestChecklistCatalogue:
    """Tests for seeded checklists."""

    def test_every_document_type_has_a_checklist(self, session, catalogue):
        for definition in CHECKLIST_TEMPLATES:
            template = DocumentChecklistTemplate.active_for_type(
                session, definition['document_type'])
            assert template is not None
            assert len(template.items) == len(definition['items'])

    def test_seeding_is_idempotent(self, session, catalogue):
        assert seed_checklist_templates(session) == []

    def test_policy_checklist_items(self, policy_checklist):
        assert len(policy_checklist.items) == 10
        assert [i.item_key for i in policy_checklist.items if i.is_critical] == \
            ['POL_C1', 'POL_C2']


class TestSubmitReview:
    """Tests for recording checklist reviews."""

    def test_clean_review_has_no_suggestion(self, reviews, reviewer, policy_checklist,
                                            policy_item):
        review, suggestion = reviews.submit_review(
            reviewer, policy_item.id, policy_checklist.id, answers(policy_checklist), 'ACCEPT'
        )

        assert review.dqs_percent == 100
        assert review.critical_failures_count == 0
        assert review.needs_manual_review is False
        assert suggestion is None

    def test_answers_by_item_id(self, reviews, reviewer, policy_checklist, policy_item):
        responses = [{'item_id': item.id, 'response': 'PARTLY'}
                     for item in policy_checklist.items]

        review, suggestion = reviews.submit_review(
            reviewer, policy_item.id, policy_checklist.id, responses, 'ACCEPT'
        )

        assert review.dqs_percent == 0
        assert suggestion.suggested_type == 'MAJOR_NC'

    def test_accept_despite_critical_failure(self, reviews, reviewer, policy_checklist,
                                             policy_item):
        review, suggestion = reviews.submit_review(
            reviewer, policy_item.id, policy_checklist.id,
            answers(policy_checklist, POL_C2='NO'), 'ACCEPT'
        )

        assert review.decision == 'ACCEPT'
        assert review.critical_failures_count == 1
        assert suggestion.suggested_type == 'MAJOR_NC'

    def test_all_na_is_flagged(self, reviews, reviewer, policy_checklist, policy_item):
        review, suggestion = reviews.submit_review(
            reviewer, policy_item.id, policy_checklist.id,
            answers(policy_checklist, default='NA'), 'ACCEPT'
        )

        assert review.dqs_percent == 0
        assert review.needs_manual_review is True
        assert suggestion is None

    def test_every_item_must_be_answered(self, reviews, reviewer, policy_checklist,
                                         policy_item):
        partial = answers(policy_checklist)[:-1]

        with pytest.raises(ValidationError) as exc:
            reviews.submit_review(reviewer, policy_item.id, policy_checklist.id, partial,
                                  'ACCEPT')
        assert exc.value.details['missing_item_keys'] == ['POL_C2']

    def test_item_answered_twice(self, reviews, reviewer, policy_checklist, policy_item):
        doubled = answers(policy_checklist) + [{'item_key': 'POL_H1', 'response': 'NO'}]

        with pytest.raises(ValidationError):
            reviews.submit_review(reviewer, policy_item.id, policy_checklist.id, doubled,
                                  'ACCEPT')

    def test_invalid_answer(self, reviews, reviewer, policy_checklist, policy_item):
        with pytest.raises(ValidationError):
            reviews.submit_review(reviewer, policy_item.id, policy_checklist.id,
                                  answers(policy_checklist, POL_H1='SORT_OF'), 'ACCEPT')

    def test_malformed_answer_entries(self, reviews, reviewer, policy_checklist, policy_item):
        for malformed in (['POL_C1'], [{'item_key': ['POL_C1'], 'response': 'YES'}]):
            with pytest.raises(ValidationError):
                reviews.submit_review(reviewer, policy_item.id, policy_checklist.id,
                                      malformed, 'ACCEPT')

    def test_invalid_decision(self, reviews, reviewer, policy_checklist, policy_item):
        with pytest.raises(ValidationError):
            reviews.submit_review(reviewer, policy_item.id, policy_checklist.id,
                                  answers(policy_checklist), 'APPROVE')

    def test_checklist_must_match_document_type(self, session, reviews, reviewer, policy_item):
        procedure = DocumentChecklistTemplate.active_for_type(session, 'PROCEDURE')

        with pytest.raises(ValidationError):
            reviews.submit_review(reviewer, policy_item.id, procedure.id,
                                  answers(procedure), 'ACCEPT')

    def test_read_only_staff_cannot_review(self, reviews, staff, policy_checklist, policy_item):
        with pytest.raises(Forbidden):
            reviews.submit_review(staff, policy_item.id, policy_checklist.id,
                                  answers(policy_checklist), 'ACCEPT')

    def test_reviews_are_immutable(self, session, rejected_review):
        review, _ = rejected_review
        review.justification = 'rewritten'

        with pytest.raises(ValueError):
            session.flush()

    def test_rereview_creates_new_record(self, reviews, reviewer, policy_checklist,
                                         policy_item, rejected_review):
        reviews.submit_review(reviewer, policy_item.id, policy_checklist.id,
                              answers(policy_checklist), 'ACCEPT')

        assert len(reviews.reviews_for_item(reviewer, policy_item.id)) == 2


class TestSuggestionResolution:
    """Tests for confirming and dismissing suggestions."""

    def test_pending_suggestion_in_banner(self, reviews, reviewer, policy_item,
                                          rejected_review):
        _, suggestion = rejected_review

        assert suggestion.status == SuggestionStatus.PENDING.value
        assert suggestion.severity_flag == 'MEDIUM'
        assert [s.id for s in reviews.pending_suggestions(reviewer, policy_item.id)] == \
            [suggestion.id]
        assert suggestion.to_dict()['outcome'] == {'kind': 'PENDING'}

    def test_confirm_with_other_type(self, session, reviews, admin, rejected_review):
        review, suggestion = rejected_review

        reviews.confirm_suggested_finding(admin, suggestion.id, 'MINOR_NC',
                                          "Policy references repealed legislation")

        finding = session.get(Finding, suggestion.confirmed_finding_id)
        assert finding.severity == 'MINOR_NC'
        assert finding.source == 'DOCUMENT_REVIEW'
        assert finding.source_document_review_id == review.id
        assert suggestion.outcome.kind == 'CONFIRMED_WITH_FINDING'

    def test_confirm_as_observation(self, session, reviews, reviewer, rejected_review):
        _, suggestion = rejected_review

        reviews.confirm_suggested_finding(reviewer, suggestion.id, 'OBSERVATION',
                                          "Minor wording issue, no gap in practice")

        assert suggestion.status == SuggestionStatus.CONFIRMED.value
        assert suggestion.confirmed_finding_id is None
        assert suggestion.confirmation_note == 'Minor wording issue, no gap in practice'
        assert suggestion.outcome.kind == 'CONFIRMED_AS_OBSERVATION'
        assert session.query(Finding).count() == 0

    def test_description_too_short(self, reviews, reviewer, rejected_review):
        _, suggestion = rejected_review

        with pytest.raises(ValidationError):
            reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC', "too short")

    def test_unknown_finding_type(self, reviews, reviewer, rejected_review):
        _, suggestion = rejected_review

        with pytest.raises(ValidationError):
            reviews.confirm_suggested_finding(reviewer, suggestion.id, 'CRITICAL',
                                              "Policy references repealed legislation")

    def test_dismiss(self, session, reviews, reviewer, policy_item, rejected_review):
        _, suggestion = rejected_review

        reviews.dismiss_suggested_finding(reviewer, suggestion.id, "Superseded upload")

        assert suggestion.status == SuggestionStatus.DISMISSED.value
        assert suggestion.dismissed_by == reviewer.user_id
        assert suggestion.dismiss_reason == 'Superseded upload'
        assert reviews.pending_suggestions(reviewer, policy_item.id) == []
        assert session.query(Finding).count() == 0

    def test_dismiss_then_confirm_conflicts(self, reviews, reviewer, rejected_review):
        _, suggestion = rejected_review
        reviews.dismiss_suggested_finding(reviewer, suggestion.id)

        with pytest.raises(Conflict):
            reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC',
                                              "Policy references repealed legislation")

    def test_confirm_twice_conflicts(self, session, reviews, reviewer, rejected_review):
        _, suggestion = rejected_review
        reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC',
                                          "Policy references repealed legislation")

        with pytest.raises(Conflict):
            reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC',
                                              "Policy references repealed legislation")
        assert session.query(Finding).count() == 1

    def test_confirm_losing_race_raises_no_finding(self, session, reviews, reviewer, admin,
                                                   rejected_review):
        """A dismissal committed by someone else leaves the confirm with nothing."""
        review, suggestion = rejected_review
        session.execute(
            update(SuggestedFinding)
            .where(SuggestedFinding.id == suggestion.id)
            .values(status=SuggestionStatus.DISMISSED.value, dismissed_by=admin.user_id)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(Conflict):
            reviews.confirm_suggested_finding(reviewer, suggestion.id, 'MAJOR_NC',
                                              "Policy references repealed legislation")

        assert session.query(Finding).count() == 0
        # The review itself belongs to the surrounding transaction and is kept
        assert session.get(DocumentReview, review.id) is not None

    def test_read_only_staff_cannot_confirm(self, reviews, staff, rejected_review):
        _, suggestion = rejected_review

        with pytest.raises(Forbidden):
            reviews.confirm_suggested_finding(staff, suggestion.id, 'MAJOR_NC',
                                              "Policy references repealed legislation")

    def test_confirmed_needs_an_outcome(self, session, rejected_review):
        _, suggestion = rejected_review

        with pytest.raises(IntegrityError):
            session.execute(
                update(SuggestedFinding)
                .where(SuggestedFinding.id == suggestion.id)
                .values(status=SuggestionStatus.CONFIRMED.value)
                .execution_options(synchronize_session=False)
            )
