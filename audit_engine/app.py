"""
Audit Engine - Flask Application

JSON API over the audit lifecycle and compliance scoring engine.
"""

import logging
import os

from flask import Flask, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from audit_engine.errors import AuditEngineError
from audit_engine.services.access_control import Actor, Role

logger = logging.getLogger(__name__)

# Headers set by the authentication collaborator
COMPANY_HEADER = 'X-Company-Id'
USER_HEADER = 'X-Company-User-Id'
ROLE_HEADER = 'X-Company-Role'

PUBLIC_BLUEPRINTS = {'public', 'health'}


def create_app(config_name=None):
    """Application factory."""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    from audit_engine.config import config

    app.config.from_object(config.get(config_name, config["default"]))

    logging.basicConfig(
        level=getattr(logging, app.config["LOG_LEVEL"].upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Database
    from audit_engine.models import configure_engine, init_db, get_db_session

    configure_engine(app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config["SQL_ECHO"])
    if app.config["CREATE_TABLES"]:
        init_db()
    if app.config["SEED_CHECKLISTS"]:
        from audit_engine.services.checklist_catalog import seed_checklist_templates

        with get_db_session() as session:
            seed_checklist_templates(session)

    # Register blueprints
    from audit_engine.routes import (
        audits_bp, findings_bp, evidence_bp, document_reviews_bp, public_bp, health_bp
    )

    app.register_blueprint(health_bp)
    app.register_blueprint(audits_bp, url_prefix="/api")
    app.register_blueprint(findings_bp, url_prefix="/api/findings")
    app.register_blueprint(evidence_bp, url_prefix="/api/evidence")
    app.register_blueprint(document_reviews_bp, url_prefix="/api")
    app.register_blueprint(public_bp, url_prefix="/public/evidence")

    @app.before_request
    def load_actor():
        """Identify the company user from the auth collaborator's headers."""
        if request.blueprint in PUBLIC_BLUEPRINTS or request.endpoint is None:
            return None

        company_id = request.headers.get(COMPANY_HEADER)
        user_id = request.headers.get(USER_HEADER)
        role = request.headers.get(ROLE_HEADER)
        if not (company_id and user_id and role):
            return jsonify({'error': 'Authentication required', 'code': 'Unauthorized'}), 401
        try:
            g.actor = Actor(user_id=user_id, company_id=company_id, role=Role(role))
        except ValueError:
            return jsonify({'error': f'Unknown role {role}', 'code': 'Unauthorized'}), 401
        return None

    # Error handlers
    @app.errorhandler(AuditEngineError)
    def engine_error(e):
        logger.warning(f"{request.method} {request.path} rejected: {e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(IntegrityError)
    def integrity_error(e):
        logger.warning(f"{request.method} {request.path} lost a write race: {e.orig}")
        return jsonify({
            'error': 'Record was modified concurrently; reload and retry',
            'code': 'Conflict'
        }), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found', 'code': 'NotFound'}), 404

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({'error': 'Internal server error', 'code': 'ServerError'}), 500

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
