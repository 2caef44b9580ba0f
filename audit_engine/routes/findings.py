"""
Findings Routes - findings register.
"""

from flask import Blueprint, jsonify, request

from audit_engine.models import get_db_session
from audit_engine.routes.helpers import current_actor, json_body, parse_date
from audit_engine.services import FindingService

findings_bp = Blueprint('findings', __name__)


@findings_bp.route('', methods=['GET'])
def list_findings():
    """List findings with filters: status, severity, audit_id."""
    with get_db_session() as session:
        findings = FindingService(session).list_findings(
            current_actor(),
            status=request.args.get('status'),
            severity=request.args.get('severity'),
            audit_id=request.args.get('audit_id'),
        )
        return jsonify({
            'findings': [f.to_dict() for f in findings],
            'total': len(findings)
        })


@findings_bp.route('/<finding_id>', methods=['GET'])
def get_finding(finding_id: str):
    with get_db_session() as session:
        finding = FindingService(session).get_finding(current_actor(), finding_id)
        return jsonify(finding.to_dict())


@findings_bp.route('/<finding_id>', methods=['PATCH'])
def update_finding(finding_id: str):
    """
    Update owner, due date or status. Only fields present are changed.

    Request body:
    {
        "owner_id": "uuid",
        "due_date": "2026-12-01",
        "status": "UNDER_REVIEW",
        "closure_note": "required when closing a major finding"
    }
    """
    data = json_body()
    changes = {}
    if 'owner_id' in data:
        changes['owner_id'] = data['owner_id']
    if 'due_date' in data:
        changes['due_date'] = parse_date(data['due_date'], 'due_date')

    with get_db_session() as session:
        finding = FindingService(session).update_finding(
            current_actor(), finding_id,
            status=data.get('status'),
            closure_note=data.get('closure_note'),
            **changes
        )
        return jsonify(finding.to_dict())


@findings_bp.route('/<finding_id>/close', methods=['POST'])
def close_finding(finding_id: str):
    data = json_body()
    with get_db_session() as session:
        finding = FindingService(session).close_finding(
            current_actor(), finding_id, data.get('closure_note')
        )
        return jsonify(finding.to_dict())


@findings_bp.route('/<finding_id>/comments', methods=['POST'])
def add_comment(finding_id: str):
    data = json_body(required=('text',))
    with get_db_session() as session:
        activity = FindingService(session).add_comment(current_actor(), finding_id, data['text'])
        return jsonify(activity.to_dict()), 201


@findings_bp.route('/<finding_id>/activity', methods=['GET'])
def get_activity(finding_id: str):
    with get_db_session() as session:
        activities = FindingService(session).get_activity(current_actor(), finding_id)
        return jsonify({'activity': [a.to_dict() for a in activities]})
