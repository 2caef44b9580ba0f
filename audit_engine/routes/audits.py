"""
Audit Routes - audit lifecycle, scope and indicator responses.
"""

from flask import Blueprint, jsonify, request

from audit_engine.models import get_db_session
from audit_engine.routes.helpers import current_actor, json_body, parse_date
from audit_engine.services import AuditLifecycleService, ResponseService, ScopeService

audits_bp = Blueprint('audits', __name__)


@audits_bp.route('/audits', methods=['GET'])
def list_audits():
    """List the company's audits, optionally by status."""
    with get_db_session() as session:
        audits = AuditLifecycleService(session).list_audits(
            current_actor(), status=request.args.get('status')
        )
        return jsonify({
            'audits': [a.to_dict() for a in audits],
            'total': len(audits)
        })


@audits_bp.route('/audits', methods=['POST'])
def create_audit():
    """
    Create a DRAFT audit.

    Request body:
    {
        "audit_type": "INTERNAL",
        "title": "Annual internal audit",
        "scope_time_from": "2026-01-01",
        "scope_time_to": "2026-06-30",
        "external_auditor_name": "...",    (EXTERNAL only)
        "external_auditor_org": "...",
        "external_auditor_email": "..."
    }
    """
    data = json_body(required=('audit_type', 'title', 'scope_time_from', 'scope_time_to'))

    with get_db_session() as session:
        audit = AuditLifecycleService(session).create_audit(
            current_actor(),
            audit_type=data['audit_type'],
            title=data['title'],
            scope_time_from=parse_date(data['scope_time_from'], 'scope_time_from'),
            scope_time_to=parse_date(data['scope_time_to'], 'scope_time_to'),
            description=data.get('description'),
            external_auditor_name=data.get('external_auditor_name'),
            external_auditor_org=data.get('external_auditor_org'),
            external_auditor_email=data.get('external_auditor_email'),
        )
        return jsonify(audit.to_dict()), 201


@audits_bp.route('/audits/<audit_id>', methods=['GET'])
def get_audit(audit_id: str):
    with get_db_session() as session:
        audit = AuditLifecycleService(session).get_audit(current_actor(), audit_id)
        return jsonify(audit.to_dict())


@audits_bp.route('/audit-domains', methods=['GET'])
def list_domains():
    """Compliance domains for the company; defaults are created on first use."""
    with get_db_session() as session:
        domains = ScopeService(session).ensure_default_domains(current_actor().company_id)
        return jsonify({'domains': [d.to_dict() for d in domains]})


# Scope

@audits_bp.route('/audits/<audit_id>/scope', methods=['GET'])
def get_scope(audit_id: str):
    with get_db_session() as session:
        return jsonify(ScopeService(session).get_scope(current_actor(), audit_id))


@audits_bp.route('/audits/<audit_id>/scope/line-items', methods=['PUT'])
def set_scope_line_items(audit_id: str):
    """Request body: {"line_item_ids": ["uuid", ...]}"""
    data = json_body(lists=('line_item_ids',))
    with get_db_session() as session:
        service = ScopeService(session)
        service.set_scope_line_items(current_actor(), audit_id, data.get('line_item_ids') or [])
        return jsonify(service.get_scope(current_actor(), audit_id))


@audits_bp.route('/audits/<audit_id>/scope/domains', methods=['PUT'])
def set_scope_domains(audit_id: str):
    """Request body: {"domain_ids": ["uuid", ...]}"""
    data = json_body(lists=('domain_ids',))
    with get_db_session() as session:
        service = ScopeService(session)
        service.set_scope_domains(current_actor(), audit_id, data.get('domain_ids') or [])
        return jsonify(service.get_scope(current_actor(), audit_id))


@audits_bp.route('/audits/<audit_id>/template', methods=['PUT'])
def select_template(audit_id: str):
    data = json_body(required=('template_id',))
    with get_db_session() as session:
        audit = ScopeService(session).select_template(current_actor(), audit_id,
                                                      data['template_id'])
        return jsonify(audit.to_dict())


# Status transitions

@audits_bp.route('/audits/<audit_id>/start', methods=['POST'])
def start_audit(audit_id: str):
    with get_db_session() as session:
        audit = AuditLifecycleService(session).start_audit(current_actor(), audit_id)
        return jsonify(audit.to_dict())


@audits_bp.route('/audits/<audit_id>/submit-for-review', methods=['POST'])
def submit_for_review(audit_id: str):
    with get_db_session() as session:
        audit = AuditLifecycleService(session).submit_for_review(current_actor(), audit_id)
        return jsonify(audit.to_dict())


@audits_bp.route('/audits/<audit_id>/request-changes', methods=['POST'])
def request_changes(audit_id: str):
    """Request body: {"notes": "what needs to change"}"""
    data = json_body()
    with get_db_session() as session:
        audit = AuditLifecycleService(session).request_changes(
            current_actor(), audit_id, data.get('notes')
        )
        return jsonify(audit.to_dict())


@audits_bp.route('/audits/<audit_id>/approve', methods=['POST'])
def approve_audit(audit_id: str):
    """Request body (optional): {"close_reason": "..."}"""
    data = json_body()
    with get_db_session() as session:
        result = AuditLifecycleService(session).approve_audit(
            current_actor(), audit_id, close_reason=data.get('close_reason')
        )
        payload = result.audit.to_dict()
        payload['warnings'] = result.warnings
        return jsonify(payload)


@audits_bp.route('/audits/<audit_id>/close', methods=['POST'])
def close_audit(audit_id: str):
    """Request body (optional): {"close_reason": "..."}"""
    data = json_body()
    with get_db_session() as session:
        audit = AuditLifecycleService(session).close_audit(
            current_actor(), audit_id, reason=data.get('close_reason')
        )
        return jsonify(audit.to_dict())


@audits_bp.route('/audits/<audit_id>/reopen', methods=['POST'])
def reopen_audit(audit_id: str):
    """Request body: {"reason": "why the audit is reopened"}"""
    data = json_body()
    with get_db_session() as session:
        audit = AuditLifecycleService(session).reopen_audit(
            current_actor(), audit_id, data.get('reason')
        )
        return jsonify(audit.to_dict())


# Indicator responses

@audits_bp.route('/audit-outcomes', methods=['GET'])
def list_outcomes():
    """Indicator responses across audits, optionally by rating and audit."""
    with get_db_session() as session:
        outcomes = ResponseService(session).list_outcomes(
            current_actor(),
            rating=request.args.get('rating'),
            audit_id=request.args.get('audit_id'),
        )
        return jsonify({
            'outcomes': [r.to_dict() for r in outcomes],
            'total': len(outcomes)
        })


@audits_bp.route('/audits/<audit_id>/responses', methods=['GET'])
def list_responses(audit_id: str):
    with get_db_session() as session:
        responses = ResponseService(session).list_responses(current_actor(), audit_id)
        return jsonify({
            'responses': [r.to_dict() for r in responses],
            'total': len(responses)
        })


@audits_bp.route('/audits/<audit_id>/responses', methods=['POST'])
def record_response(audit_id: str):
    """
    Record a rating while the audit is IN_PROGRESS.

    Request body:
    {
        "template_indicator_id": "uuid",
        "rating": "MINOR_NC",
        "comment": "at least 10 characters for non-conformities"
    }
    """
    data = json_body(required=('template_indicator_id', 'rating'))
    with get_db_session() as session:
        response = ResponseService(session).record_response(
            current_actor(), audit_id, data['template_indicator_id'],
            data['rating'], data.get('comment')
        )
        return jsonify(response.to_dict()), 201


@audits_bp.route('/audits/<audit_id>/responses/<indicator_id>', methods=['PUT'])
def update_response(audit_id: str, indicator_id: str):
    data = json_body(required=('rating',))
    with get_db_session() as session:
        response = ResponseService(session).update_response(
            current_actor(), audit_id, indicator_id, data['rating'], data.get('comment')
        )
        return jsonify(response.to_dict())


@audits_bp.route('/audits/<audit_id>/review-responses', methods=['POST'])
def add_response_in_review(audit_id: str):
    """Fill an unanswered indicator while the audit is IN_REVIEW."""
    data = json_body(required=('template_indicator_id', 'rating'))
    with get_db_session() as session:
        response = ResponseService(session).add_response_in_review(
            current_actor(), audit_id, data['template_indicator_id'],
            data['rating'], data.get('comment')
        )
        return jsonify(response.to_dict()), 201


@audits_bp.route('/audits/<audit_id>/responses/<response_id>/review-comment', methods=['POST'])
def add_review_comment(audit_id: str, response_id: str):
    data = json_body(required=('comment',))
    with get_db_session() as session:
        response = ResponseService(session).add_review_comment(
            current_actor(), audit_id, response_id, data['comment']
        )
        return jsonify(response.to_dict())


@audits_bp.route('/audits/<audit_id>/score', methods=['GET'])
def audit_score(audit_id: str):
    with get_db_session() as session:
        return jsonify(ResponseService(session).audit_score(current_actor(), audit_id))
