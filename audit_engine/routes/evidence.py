"""
Evidence Routes - evidence requests, internal uploads and review.

File bytes never pass through here; the storage collaborator uploads the
file and hands over its reference (path, name, mime type, size).
"""

from flask import Blueprint, jsonify, request

from audit_engine.models import get_db_session
from audit_engine.routes.helpers import current_actor, json_body, parse_date
from audit_engine.services import EvidenceService, SubmittedItem

evidence_bp = Blueprint('evidence', __name__)


def submitted_item(data) -> SubmittedItem:
    return SubmittedItem(
        item_kind=data.get('item_kind', 'UPLOAD'),
        file_path=data.get('file_path'),
        file_name=data.get('file_name'),
        mime_type=data.get('mime_type'),
        file_size_bytes=data.get('file_size_bytes'),
        external_url=data.get('external_url'),
        note=data.get('note'),
    )


def request_dict(evidence_request, include_items: bool = False) -> dict:
    result = evidence_request.to_dict()
    if include_items:
        result['items'] = [item.to_dict() for item in evidence_request.items]
    return result


@evidence_bp.route('/requests', methods=['GET'])
def list_requests():
    with get_db_session() as session:
        requests = EvidenceService(session).list_requests(
            current_actor(),
            status=request.args.get('status'),
            audit_id=request.args.get('audit_id'),
            finding_id=request.args.get('finding_id'),
        )
        return jsonify({
            'requests': [request_dict(r) for r in requests],
            'total': len(requests)
        })


@evidence_bp.route('/requests', methods=['POST'])
def create_request():
    """
    Request evidence.

    Request body:
    {
        "evidence_type": "POLICY",
        "request_note": "Upload the current incident management policy",
        "due_date": "2026-11-30",
        "audit_id": "uuid",                 (optional)
        "finding_id": "uuid",               (optional)
        "template_indicator_id": "uuid"     (optional)
    }
    """
    data = json_body(required=('evidence_type', 'request_note'))
    with get_db_session() as session:
        evidence_request = EvidenceService(session).request_evidence(
            current_actor(),
            evidence_type=data['evidence_type'],
            request_note=data['request_note'],
            due_date=parse_date(data.get('due_date'), 'due_date'),
            audit_id=data.get('audit_id'),
            finding_id=data.get('finding_id'),
            template_indicator_id=data.get('template_indicator_id'),
        )
        return jsonify(request_dict(evidence_request)), 201


@evidence_bp.route('/requests/<request_id>', methods=['GET'])
def get_request(request_id: str):
    with get_db_session() as session:
        evidence_request = EvidenceService(session).get_request(current_actor(), request_id)
        return jsonify(request_dict(evidence_request, include_items=True))


@evidence_bp.route('/requests/<request_id>/items', methods=['POST'])
def submit_item(request_id: str):
    """Internal upload: register a stored file or a link against the request."""
    data = json_body(integers=('file_size_bytes',))
    with get_db_session() as session:
        item = EvidenceService(session).submit_evidence(
            current_actor(), request_id, submitted_item(data)
        )
        return jsonify(item.to_dict()), 201


@evidence_bp.route('/requests/<request_id>/start-review', methods=['POST'])
def start_review(request_id: str):
    with get_db_session() as session:
        evidence_request = EvidenceService(session).start_review(current_actor(), request_id)
        return jsonify(request_dict(evidence_request))


@evidence_bp.route('/requests/<request_id>/review', methods=['POST'])
def review_request(request_id: str):
    """Request body: {"decision": "ACCEPTED" | "REJECTED", "review_note": "..."}"""
    data = json_body(required=('decision',))
    with get_db_session() as session:
        evidence_request = EvidenceService(session).review_evidence(
            current_actor(), request_id, data['decision'], data.get('review_note')
        )
        return jsonify(request_dict(evidence_request))
