"""
Indicator Response Tests.

Tests for:
- Recording ratings and the findings they raise
- One response per (audit, indicator)
- Re-rating during assessment
- Responses and review comments during review
- Audit score
"""

import pytest

from audit_engine.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from audit_engine.models import (
    ActivityType, Finding, FindingSeverity, FindingStatus, IndicatorResponse, Rating,
    ResponseStatus
)

from conftest import NC_COMMENT


def findings_for(session, audit_id):
    return session.query(Finding).filter(Finding.audit_id == audit_id).all()


class TestRecordResponse:
    """Tests for recording indicator responses."""

    def test_conformity_scores_without_finding(self, session, responses, auditor, catalogue,
                                               started_audit):
        response = responses.record_response(auditor, started_audit.id,
                                             catalogue.indicator_ids[0], 'CONFORMITY')

        assert response.score_points == 2
        assert response.score_version == 'v1'
        assert response.status == ResponseStatus.OPEN.value
        assert findings_for(session, started_audit.id) == []

    def test_short_nonconformity_comment_is_rejected(self, responses, auditor, catalogue,
                                                     started_audit):
        with pytest.raises(ValidationError) as exc:
            responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'MINOR_NC', 'x' * 9)

        assert "provide at least 10 characters" in exc.value.message
        assert exc.value.details['min_length'] == 10

    def test_missing_nonconformity_comment_is_rejected(self, responses, auditor, catalogue,
                                                       started_audit):
        with pytest.raises(ValidationError):
            responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'MAJOR_NC')

    def test_nonconformity_raises_one_open_finding(self, session, responses, auditor,
                                                   catalogue, started_audit):
        response = responses.record_response(auditor, started_audit.id,
                                             catalogue.indicator_ids[0], 'MINOR_NC', 'x' * 10)

        found = findings_for(session, started_audit.id)
        assert len(found) == 1
        assert found[0].severity == FindingSeverity.MINOR_NC.value
        assert found[0].status == FindingStatus.OPEN.value
        assert found[0].indicator_response_id == response.id
        assert 'Safety signage is displayed at every site' in found[0].finding_text
        assert 'x' * 10 in found[0].finding_text

    def test_duplicate_response_conflicts(self, responses, auditor, catalogue, started_audit):
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'CONFORMITY')

        with pytest.raises(Conflict) as exc:
            responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'CONFORMITY_BEST_PRACTICE')
        assert "use the update path" in exc.value.message

    def test_unique_constraint_settles_concurrent_insert(self, session, monkeypatch, responses,
                                                          auditor, catalogue, started_audit):
        """A racing insert that passed the existence check still ends in Conflict."""
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'CONFORMITY')
        monkeypatch.setattr(IndicatorResponse, 'get_for_indicator', lambda *args: None)

        with pytest.raises(Conflict):
            responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'MAJOR_NC', NC_COMMENT)

        # Earlier work in the same transaction survives
        assert session.query(IndicatorResponse).count() == 1
        assert started_audit.status == 'IN_PROGRESS'
        assert findings_for(session, started_audit.id) == []

    def test_requires_in_progress(self, responses, auditor, catalogue, draft_audit):
        with pytest.raises(InvalidState):
            responses.record_response(auditor, draft_audit.id, catalogue.indicator_ids[0],
                                      'CONFORMITY')

    def test_indicator_outside_template(self, responses, auditor, started_audit):
        with pytest.raises(NotFound):
            responses.record_response(auditor, started_audit.id, 'no-such-indicator',
                                      'CONFORMITY')

    def test_unknown_rating(self, responses, auditor, catalogue, started_audit):
        with pytest.raises(ValidationError) as exc:
            responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'EXCELLENT')
        assert 'MAJOR_NC' in exc.value.details['allowed_ratings']

    def test_reviewer_cannot_record(self, responses, reviewer, catalogue, started_audit):
        with pytest.raises(Forbidden):
            responses.record_response(reviewer, started_audit.id, catalogue.indicator_ids[0],
                                      'CONFORMITY')


class TestUpdateResponse:
    """Tests for re-rating during assessment."""

    def test_correction_to_conformity_keeps_finding(self, session, responses, findings,
                                                    auditor, catalogue, started_audit,
                                                    major_finding):
        response = responses.update_response(auditor, started_audit.id,
                                             catalogue.indicator_ids[0], 'CONFORMITY')

        assert response.score_points == 2
        assert major_finding.status == FindingStatus.OPEN.value

        activity = findings.get_activity(auditor, major_finding.id)
        assert [a.activity_type for a in activity].count(ActivityType.COMMENT_ADDED.value) == 1

    def test_rerate_realigns_open_finding(self, session, responses, auditor, catalogue,
                                          started_audit, major_finding):
        responses.update_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'MINOR_NC', NC_COMMENT)

        found = findings_for(session, started_audit.id)
        assert len(found) == 1
        assert found[0].severity == FindingSeverity.MINOR_NC.value

    def test_rerate_after_closure_raises_new_finding(self, session, responses, findings,
                                                     auditor, reviewer, catalogue,
                                                     started_audit, major_finding):
        findings.close_finding(reviewer, major_finding.id, "Signage installed")

        responses.update_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'MAJOR_NC', 'signage removed again during visit')

        found = findings_for(session, started_audit.id)
        assert len(found) == 2
        assert sorted(f.status for f in found) == ['CLOSED', 'OPEN']

        response = IndicatorResponse.get_for_indicator(session, started_audit.id,
                                                       catalogue.indicator_ids[0])
        assert response.status == ResponseStatus.OPEN.value

    def test_update_requires_existing_response(self, responses, auditor, catalogue,
                                               started_audit):
        with pytest.raises(NotFound):
            responses.update_response(auditor, started_audit.id, catalogue.indicator_ids[1],
                                      'CONFORMITY')

    def test_update_requires_in_progress(self, lifecycle, responses, auditor, catalogue,
                                         started_audit, major_finding):
        lifecycle.submit_for_review(auditor, started_audit.id)

        with pytest.raises(InvalidState):
            responses.update_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                      'CONFORMITY')


class TestReviewResponses:
    """Tests for responses and comments while IN_REVIEW."""

    @pytest.fixture
    def in_review(self, lifecycle, auditor, started_audit, major_finding):
        return lifecycle.submit_for_review(auditor, started_audit.id)

    def test_reviewer_fills_gap(self, responses, reviewer, catalogue, in_review):
        response = responses.add_response_in_review(reviewer, in_review.id,
                                                    catalogue.indicator_ids[1], 'CONFORMITY')
        assert response.created_by == reviewer.user_id

    def test_auditor_cannot_add_in_review(self, responses, auditor, catalogue, in_review):
        with pytest.raises(Forbidden):
            responses.add_response_in_review(auditor, in_review.id,
                                             catalogue.indicator_ids[1], 'CONFORMITY')

    def test_review_gap_fill_is_still_unique(self, responses, admin, catalogue, in_review):
        with pytest.raises(Conflict):
            responses.add_response_in_review(admin, in_review.id,
                                              catalogue.indicator_ids[0], 'CONFORMITY')

    def test_add_in_review_requires_in_review(self, responses, admin, catalogue, started_audit):
        with pytest.raises(InvalidState):
            responses.add_response_in_review(admin, started_audit.id,
                                              catalogue.indicator_ids[1], 'CONFORMITY')

    def test_lead_review_comment(self, responses, admin, catalogue, in_review):
        response = responses.list_responses(admin, in_review.id)[0]

        updated = responses.add_review_comment(admin, in_review.id, response.id,
                                               "Confirm photo evidence")
        assert updated.review_comment == 'Confirm photo evidence'
        assert updated.review_comment_by == admin.user_id

    def test_review_comment_is_lead_only(self, responses, reviewer, catalogue, in_review):
        response = responses.list_responses(reviewer, in_review.id)[0]

        with pytest.raises(Forbidden):
            responses.add_review_comment(reviewer, in_review.id, response.id, "Looks fine")

    def test_review_comment_only_on_nonconformity(self, responses, admin, catalogue,
                                                  in_review):
        conformity = responses.add_response_in_review(admin, in_review.id,
                                                      catalogue.indicator_ids[1], 'CONFORMITY')

        with pytest.raises(ValidationError):
            responses.add_review_comment(admin, in_review.id, conformity.id, "Looks fine")


class TestAuditScore:
    """Tests for the aggregate audit score."""

    def test_no_responses(self, responses, auditor, started_audit):
        score = responses.audit_score(auditor, started_audit.id)

        assert score['score_percent'] is None
        assert score['responses'] == 0
        assert score['total_indicators'] == 3

    def test_single_major_is_zero(self, responses, auditor, started_audit, major_finding):
        score = responses.audit_score(auditor, started_audit.id)

        assert score['score_percent'] == 0
        assert score['nonconformities'] == 1
        assert score['rating_counts'][Rating.MAJOR_NC.value] == 1

    def test_unanswered_indicators_are_excluded(self, responses, auditor, catalogue,
                                                started_audit):
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'CONFORMITY_BEST_PRACTICE')
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[2],
                                  'CONFORMITY')

        score = responses.audit_score(auditor, started_audit.id)
        assert score['score_percent'] == 83
        assert score['points_earned'] == 5
        assert score['responses'] == 2


class TestAuditOutcomes:
    """Tests for the cross-audit outcome listing."""

    def test_filter_by_rating(self, responses, auditor, catalogue, started_audit):
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                                  'MINOR_NC', NC_COMMENT)
        responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[1],
                                  'CONFORMITY')

        assert len(responses.list_outcomes(auditor)) == 2
        minors = responses.list_outcomes(auditor, rating='MINOR_NC', audit_id=started_audit.id)
        assert [r.template_indicator_id for r in minors] == [catalogue.indicator_ids[0]]

    def test_unknown_rating(self, responses, auditor):
        with pytest.raises(ValidationError):
            responses.list_outcomes(auditor, rating='GOOD')

    def test_other_company_sees_nothing(self, responses, outsider, started_audit,
                                        major_finding):
        assert responses.list_outcomes(outsider) == []
        with pytest.raises(NotFound):
            responses.list_outcomes(outsider, audit_id=started_audit.id)
