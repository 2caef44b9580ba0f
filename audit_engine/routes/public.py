"""
Public Evidence Routes - tokenized upload portal for external auditees.

No company session here: the request's public token is the credential,
and the uploader is recorded by name and email.
"""

from flask import Blueprint, jsonify

from audit_engine.errors import NotFound
from audit_engine.models import EvidenceRequest, get_db_session
from audit_engine.routes.evidence import submitted_item
from audit_engine.routes.helpers import json_body
from audit_engine.services import EvidenceService

public_bp = Blueprint('public', __name__)


@public_bp.route('/<token>', methods=['GET'])
def get_request(token: str):
    """What is being asked for; internal ids and notes stay hidden."""
    with get_db_session() as session:
        evidence_request = EvidenceRequest.get_by_token(session, token)
        if evidence_request is None:
            raise NotFound("Evidence request not found")
        return jsonify({
            'evidence_type': evidence_request.evidence_type,
            'request_note': evidence_request.request_note,
            'status': evidence_request.status,
            'due_date': evidence_request.due_date.isoformat()
            if evidence_request.due_date else None,
            'items_submitted': len(evidence_request.items),
        })


@public_bp.route('/<token>/items', methods=['POST'])
def submit_item(token: str):
    """
    External upload.

    Request body:
    {
        "uploader_name": "Jo Citizen",
        "uploader_email": "jo@example.org",
        "item_kind": "UPLOAD",
        "file_path": "storage/key",
        "file_name": "policy.pdf",
        "mime_type": "application/pdf",
        "file_size_bytes": 12345
    }
    """
    data = json_body(required=('uploader_name', 'uploader_email'),
                     integers=('file_size_bytes',))
    with get_db_session() as session:
        item = EvidenceService(session).submit_evidence_by_token(
            token, submitted_item(data), data['uploader_name'], data['uploader_email']
        )
        return jsonify({
            'id': item.id,
            'evidence_request_id': item.evidence_request_id,
            'message': 'Evidence received'
        }), 201
