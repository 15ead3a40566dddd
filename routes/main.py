from flask import Blueprint, jsonify
from sqlalchemy import text

from models import db
from utils import isoformat_utc, utcnow

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """Liveness plus a trivial database round trip."""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except Exception as e:
        db.session.rollback()
        database = f'error: {e.__class__.__name__}'

    status = 200 if database == 'ok' else 503
    return jsonify({
        'status': 'ok' if status == 200 else 'degraded',
        'database': database,
        'time': isoformat_utc(utcnow()),
    }), status
