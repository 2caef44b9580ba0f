"""
Health Routes
"""

from flask import Blueprint, jsonify
from sqlalchemy import text

from audit_engine import __version__
from audit_engine.models import get_db_session

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health():
    """Liveness plus a database round-trip."""
    with get_db_session() as session:
        session.execute(text('SELECT 1'))
    return jsonify({'status': 'healthy', 'version': __version__})
