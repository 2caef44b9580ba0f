"""
Document Review Routes - checklist reviews and suggested findings.
"""

from flask import Blueprint, jsonify, request

from audit_engine.errors import NotFound
from audit_engine.models import DocumentChecklistTemplate, get_db_session
from audit_engine.routes.helpers import current_actor, json_body
from audit_engine.services import DocumentReviewService

document_reviews_bp = Blueprint('document_reviews', __name__)


def template_dict(template: DocumentChecklistTemplate) -> dict:
    result = template.to_dict()
    result['items'] = [item.to_dict() for item in template.items]
    return result


@document_reviews_bp.route('/checklists/<document_type>', methods=['GET'])
def get_checklist(document_type: str):
    """Latest active checklist for a document type."""
    with get_db_session() as session:
        template = DocumentChecklistTemplate.active_for_type(session, document_type.upper())
        if template is None:
            raise NotFound("No checklist template for this document type",
                           {'document_type': document_type})
        return jsonify(template_dict(template))


@document_reviews_bp.route('/document-reviews', methods=['POST'])
def submit_review():
    """
    Submit a completed checklist review.

    Request body:
    {
        "evidence_item_id": "uuid",
        "checklist_template_id": "uuid",
        "responses": [{"item_id": "uuid", "response": "YES"}, ...],
        "decision": "ACCEPT" | "REJECT",
        "justification": "optional",
        "audit_id": "optional uuid"
    }
    """
    data = json_body(required=('evidence_item_id', 'checklist_template_id', 'responses',
                               'decision'),
                     lists=('responses',))
    with get_db_session() as session:
        review, suggestion = DocumentReviewService(session).submit_review(
            current_actor(),
            evidence_item_id=data['evidence_item_id'],
            checklist_template_id=data['checklist_template_id'],
            responses=data['responses'],
            decision=data['decision'],
            justification=data.get('justification'),
            audit_id=data.get('audit_id'),
        )
        return jsonify({
            'review': review.to_dict(),
            'suggested_finding': suggestion.to_dict() if suggestion else None,
        }), 201


@document_reviews_bp.route('/document-reviews/items/<evidence_item_id>', methods=['GET'])
def reviews_for_item(evidence_item_id: str):
    with get_db_session() as session:
        reviews = DocumentReviewService(session).reviews_for_item(current_actor(),
                                                                  evidence_item_id)
        return jsonify({'reviews': [r.to_dict() for r in reviews]})


@document_reviews_bp.route('/suggested-findings', methods=['GET'])
def pending_suggestions():
    """Pending suggestions for the banner, optionally for one evidence item."""
    with get_db_session() as session:
        suggestions = DocumentReviewService(session).pending_suggestions(
            current_actor(), evidence_item_id=request.args.get('evidence_item_id')
        )
        return jsonify({'suggested_findings': [s.to_dict() for s in suggestions]})


@document_reviews_bp.route('/suggested-findings/<suggestion_id>', methods=['GET'])
def get_suggestion(suggestion_id: str):
    with get_db_session() as session:
        suggestion = DocumentReviewService(session).get_suggestion(current_actor(), suggestion_id)
        return jsonify(suggestion.to_dict())


@document_reviews_bp.route('/suggested-findings/<suggestion_id>/confirm', methods=['POST'])
def confirm_suggestion(suggestion_id: str):
    """Request body: {"finding_type": "MAJOR_NC" | "MINOR_NC" | "OBSERVATION", "description": "..."}"""
    data = json_body(required=('finding_type',))
    with get_db_session() as session:
        suggestion = DocumentReviewService(session).confirm_suggested_finding(
            current_actor(), suggestion_id, data['finding_type'], data.get('description')
        )
        return jsonify(suggestion.to_dict())


@document_reviews_bp.route('/suggested-findings/<suggestion_id>/dismiss', methods=['POST'])
def dismiss_suggestion(suggestion_id: str):
    data = json_body()
    with get_db_session() as session:
        suggestion = DocumentReviewService(session).dismiss_suggested_finding(
            current_actor(), suggestion_id, data.get('reason')
        )
        return jsonify(suggestion.to_dict())
