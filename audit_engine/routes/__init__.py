"""
Audit Engine Routes

Flask blueprints for the JSON API:
- audits: lifecycle, scope, indicator responses, score
- findings: findings register
- evidence: evidence requests and review
- document_reviews: checklist reviews and suggested findings
- public: tokenized evidence upload portal
- health: liveness
"""

from .audits import audits_bp
from .findings import findings_bp
from .evidence import evidence_bp
from .document_reviews import document_reviews_bp
from .public import public_bp
from .health import health_bp

__all__ = [
    'audits_bp',
    'findings_bp',
    'evidence_bp',
    'document_reviews_bp',
    'public_bp',
    'health_bp',
]
