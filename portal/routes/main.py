from flask import Blueprint, jsonify, current_app
from portal import db

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    return jsonify({'name': 'Production Portal', 'version': current_app.config['PORTAL_VERSION']})


@main_bp.route('/health')
def health():
    """Liveness check including a database round trip"""
    db.session.execute(db.text('SELECT 1'))
    return jsonify({'status': 'ok'})
