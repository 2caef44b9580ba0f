"""
Tests for the Audit Engine JSON API.

Tests for:
- Health and authentication headers
- Audit routes (/api/audits/*)
- Findings routes (/api/findings/*)
- Evidence routes (/api/evidence/*) and the public portal (/public/evidence/*)
- Document review routes (/api/document-reviews, /api/suggested-findings/*)
"""

import json

import pytest

from conftest import auth_headers


@pytest.fixture
def headers(auditor):
    return auth_headers(auditor)


@pytest.fixture
def lead_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def audit_id(client, headers, catalogue):
    """An IN_PROGRESS audit created through the API."""
    response = client.post('/api/audits', headers=headers, json={
        'audit_type': 'INTERNAL',
        'title': 'API audit',
        'scope_time_from': '2026-01-01',
        'scope_time_to': '2026-06-30',
    })
    assert response.status_code == 201
    audit_id = response.get_json()['id']

    response = client.put(f'/api/audits/{audit_id}/scope/line-items', headers=headers,
                          json={'line_item_ids': catalogue.line_item_ids[:1]})
    assert response.status_code == 200
    response = client.put(f'/api/audits/{audit_id}/template', headers=headers,
                          json={'template_id': catalogue.template_id})
    assert response.status_code == 200
    response = client.post(f'/api/audits/{audit_id}/start', headers=headers)
    assert response.status_code == 200
    return audit_id


# ============================================
# Health / Auth
# ============================================

class TestHealthAndAuth:
    """Tests for health check and header authentication."""

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data['status'] == 'healthy'

    def test_missing_headers(self, client):
        response = client.get('/api/audits')

        assert response.status_code == 401
        assert response.get_json()['code'] == 'Unauthorized'

    def test_unknown_role(self, client, auditor):
        headers = dict(auth_headers(auditor), **{'X-Company-Role': 'Owner'})
        assert client.get('/api/audits', headers=headers).status_code == 401

    def test_unknown_route(self, client, headers):
        response = client.get('/api/nowhere', headers=headers)

        assert response.status_code == 404
        assert response.get_json()['code'] == 'NotFound'


# ============================================
# Audit Route Tests
# ============================================

class TestAuditRoutes:
    """Tests for audit lifecycle routes."""

    def test_create_requires_fields(self, client, headers, catalogue):
        response = client.post('/api/audits', headers=headers, json={'audit_type': 'INTERNAL'})

        assert response.status_code == 400
        data = response.get_json()
        assert data['code'] == 'ValidationError'
        assert set(data['missing_fields']) == {'title', 'scope_time_from', 'scope_time_to'}

    def test_non_string_title(self, client, headers, catalogue):
        response = client.post('/api/audits', headers=headers, json={
            'audit_type': 'INTERNAL', 'title': 123,
            'scope_time_from': '2026-01-01', 'scope_time_to': '2026-06-30',
        })

        assert response.status_code == 400
        data = response.get_json()
        assert data['code'] == 'ValidationError'
        assert data['field'] == 'title'

    def test_non_string_reason(self, client, headers, audit_id):
        response = client.post(f'/api/audits/{audit_id}/close', headers=headers,
                               json={'close_reason': ['not', 'text']})
        assert response.status_code == 400

    def test_scope_must_be_a_list(self, client, headers, catalogue, audit_id):
        response = client.put(f'/api/audits/{audit_id}/scope/line-items', headers=headers,
                              json={'line_item_ids': catalogue.line_item_ids[0]})
        assert response.status_code == 400

    def test_bad_date(self, client, headers, catalogue):
        response = client.post('/api/audits', headers=headers, json={
            'audit_type': 'INTERNAL', 'title': 'Audit',
            'scope_time_from': '01/01/2026', 'scope_time_to': '2026-06-30',
        })
        assert response.status_code == 400

    def test_started_audit(self, client, headers, audit_id):
        data = client.get(f'/api/audits/{audit_id}', headers=headers).get_json()

        assert data['status'] == 'IN_PROGRESS'
        assert data['scope_locked'] is True

    def test_start_twice(self, client, headers, audit_id):
        response = client.post(f'/api/audits/{audit_id}/start', headers=headers)

        assert response.status_code == 409
        assert response.get_json()['code'] == 'InvalidState'

    def test_empty_scope(self, client, headers, catalogue):
        created = client.post('/api/audits', headers=headers, json={
            'audit_type': 'INTERNAL', 'title': 'Empty',
            'scope_time_from': '2026-01-01', 'scope_time_to': '2026-01-31',
        }).get_json()

        response = client.post(f"/api/audits/{created['id']}/start", headers=headers)
        assert response.status_code == 400
        assert response.get_json()['code'] == 'EmptyScope'

    def test_locked_scope(self, client, headers, catalogue, audit_id):
        response = client.put(f'/api/audits/{audit_id}/scope/line-items', headers=headers,
                              json={'line_item_ids': catalogue.line_item_ids})
        assert response.status_code == 409

    def test_response_and_score(self, client, headers, catalogue, audit_id):
        response = client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'MINOR_NC',
            'comment': 'too short',
        })
        assert response.status_code == 400
        assert 'at least 10 characters' in response.get_json()['error']

        response = client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'MINOR_NC',
            'comment': 'two of five sites lack signage',
        })
        assert response.status_code == 201

        duplicate = client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'CONFORMITY',
        })
        assert duplicate.status_code == 409
        assert duplicate.get_json()['code'] == 'Conflict'

        score = client.get(f'/api/audits/{audit_id}/score', headers=headers).get_json()
        assert score['score_percent'] == 33
        assert score['responses'] == 1

        listed = client.get(f'/api/audits/{audit_id}/responses', headers=headers).get_json()
        assert listed['total'] == 1

    def test_audit_outcomes(self, client, headers, catalogue, audit_id, outsider):
        client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'CONFORMITY',
        })

        data = client.get(f'/api/audit-outcomes?rating=CONFORMITY&audit_id={audit_id}',
                          headers=headers).get_json()
        assert data['total'] == 1
        assert data['outcomes'][0]['rating'] == 'CONFORMITY'

        assert client.get('/api/audit-outcomes?rating=GOOD',
                          headers=headers).status_code == 400
        assert client.get(f'/api/audit-outcomes?audit_id={audit_id}',
                          headers=auth_headers(outsider)).status_code == 404

    def test_forbidden_role(self, client, headers, audit_id, staff):
        response = client.post(f'/api/audits/{audit_id}/submit-for-review',
                               headers=auth_headers(staff))

        assert response.status_code == 403
        assert response.get_json()['code'] == 'Forbidden'

    def test_review_and_approve(self, client, headers, lead_headers, audit_id):
        assert client.post(f'/api/audits/{audit_id}/submit-for-review',
                           headers=headers).status_code == 200

        response = client.post(f'/api/audits/{audit_id}/request-changes',
                               headers=lead_headers, json={})
        assert response.status_code == 400

        response = client.post(f'/api/audits/{audit_id}/approve', headers=lead_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'CLOSED'
        assert data['approved_at'] is not None
        assert data['warnings'] == []

        response = client.post(f'/api/audits/{audit_id}/reopen', headers=lead_headers,
                               json={'reason': 'New complaint received'})
        assert response.get_json()['status'] == 'IN_REVIEW'

    def test_close_with_open_major(self, client, headers, catalogue, audit_id):
        client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'MAJOR_NC',
            'comment': 'missing required signage onsite',
        })

        response = client.post(f'/api/audits/{audit_id}/close', headers=headers)
        assert response.status_code == 400

        response = client.post(f'/api/audits/{audit_id}/close', headers=headers,
                               json={'close_reason': 'Service discontinued'})
        assert response.status_code == 200
        assert response.get_json()['close_reason'] == 'Service discontinued'

    def test_other_company_sees_nothing(self, client, audit_id, outsider):
        response = client.get(f'/api/audits/{audit_id}', headers=auth_headers(outsider))
        assert response.status_code == 404

    def test_domains(self, client, headers, catalogue):
        data = client.get('/api/audit-domains', headers=headers).get_json()
        assert len(data['domains']) == 4


# ============================================
# Findings Route Tests
# ============================================

class TestFindingRoutes:
    """Tests for the findings register routes."""

    @pytest.fixture
    def finding_id(self, client, headers, catalogue, audit_id):
        client.post(f'/api/audits/{audit_id}/responses', headers=headers, json={
            'template_indicator_id': catalogue.indicator_ids[0],
            'rating': 'MAJOR_NC',
            'comment': 'missing required signage onsite',
        })
        findings = client.get('/api/findings', headers=headers,
                              query_string={'audit_id': audit_id}).get_json()
        assert findings['total'] == 1
        return findings['findings'][0]['id']

    def test_patch_owner_and_due_date(self, client, headers, finding_id):
        response = client.patch(f'/api/findings/{finding_id}', headers=headers,
                                json={'owner_id': 'user-owner', 'due_date': '2026-12-01'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['owner_id'] == 'user-owner'
        assert data['due_date'] == '2026-12-01'

    def test_close_requires_note(self, client, finding_id, reviewer):
        response = client.post(f'/api/findings/{finding_id}/close',
                               headers=auth_headers(reviewer), json={})
        assert response.status_code == 400

        response = client.post(f'/api/findings/{finding_id}/close',
                               headers=auth_headers(reviewer),
                               json={'closure_note': 'Signage installed'})
        assert response.get_json()['status'] == 'CLOSED'

    def test_comment_and_activity(self, client, headers, finding_id):
        response = client.post(f'/api/findings/{finding_id}/comments', headers=headers,
                               json={'text': 'Site manager notified'})
        assert response.status_code == 201

        activity = client.get(f'/api/findings/{finding_id}/activity',
                              headers=headers).get_json()['activity']
        assert {a['activity_type'] for a in activity} == {'CREATED', 'COMMENT_ADDED'}

    def test_bad_filter(self, client, headers, finding_id):
        response = client.get('/api/findings', headers=headers,
                              query_string={'status': 'DONE'})
        assert response.status_code == 400


# ============================================
# Evidence / Portal / Document Review Tests
# ============================================

class TestEvidenceRoutes:
    """Tests for evidence requests, the public portal and document reviews."""

    @pytest.fixture
    def evidence_request(self, client, headers, catalogue):
        response = client.post('/api/evidence/requests', headers=headers, json={
            'evidence_type': 'POLICY',
            'request_note': 'Current incident management policy',
            'due_date': '2026-11-30',
        })
        assert response.status_code == 201
        return response.get_json()

    def test_portal_upload(self, client, headers, evidence_request):
        token = evidence_request['public_token']

        summary = client.get(f'/public/evidence/{token}').get_json()
        assert summary['evidence_type'] == 'POLICY'
        assert summary['items_submitted'] == 0
        assert 'company_id' not in summary

        response = client.post(f'/public/evidence/{token}/items', json={
            'uploader_name': 'Jo Citizen',
            'uploader_email': 'jo@example.org',
            'file_path': 'evidence/policy.pdf',
            'file_name': 'policy.pdf',
            'mime_type': 'application/pdf',
            'file_size_bytes': 1024,
        })
        assert response.status_code == 201

        detail = client.get(f"/api/evidence/requests/{evidence_request['id']}",
                            headers=headers).get_json()
        assert detail['status'] == 'SUBMITTED'
        assert detail['items'][0]['uploader_email'] == 'jo@example.org'

    def test_portal_requires_uploader(self, client, evidence_request):
        response = client.post(f"/public/evidence/{evidence_request['public_token']}/items",
                               json={'file_path': 'x', 'mime_type': 'application/pdf'})
        assert response.status_code == 400

    def test_portal_unknown_token(self, client, catalogue):
        assert client.get('/public/evidence/not-a-token').status_code == 404

    def test_review_flow(self, client, headers, evidence_request, reviewer):
        request_id = evidence_request['id']
        reviewer_headers = auth_headers(reviewer)

        item = client.post(f'/api/evidence/requests/{request_id}/items', headers=headers, json={
            'file_path': 'evidence/policy.pdf',
            'file_name': 'policy.pdf',
            'mime_type': 'application/pdf',
        }).get_json()

        checklist = client.get('/api/checklists/policy', headers=reviewer_headers).get_json()
        assert len(checklist['items']) == 10

        response = client.post('/api/document-reviews', headers=reviewer_headers, json={
            'evidence_item_id': item['id'],
            'checklist_template_id': checklist['id'],
            'responses': [
                {'item_id': i['id'], 'response': 'NO' if i['item_key'] == 'POL_C1' else 'YES'}
                for i in checklist['items']
            ],
            'decision': 'REJECT',
        })
        assert response.status_code == 201
        suggestion = response.get_json()['suggested_finding']
        assert suggestion['suggested_type'] == 'MAJOR_NC'

        pending = client.get('/api/suggested-findings', headers=reviewer_headers,
                             query_string={'evidence_item_id': item['id']}).get_json()
        assert len(pending['suggested_findings']) == 1

        response = client.post(f"/api/suggested-findings/{suggestion['id']}/dismiss",
                               headers=reviewer_headers, json={'reason': 'Wrong file'})
        assert response.get_json()['outcome']['kind'] == 'DISMISSED'

        response = client.post(f"/api/suggested-findings/{suggestion['id']}/confirm",
                               headers=reviewer_headers,
                               json={'finding_type': 'MAJOR_NC',
                                     'description': 'Policy is out of date'})
        assert response.status_code == 409

        assert client.post(f'/api/evidence/requests/{request_id}/start-review',
                           headers=reviewer_headers).status_code == 200
        response = client.post(f'/api/evidence/requests/{request_id}/review',
                               headers=reviewer_headers,
                               json={'decision': 'REJECTED', 'review_note': 'Out of date'})
        assert response.get_json()['status'] == 'REJECTED'
