"""Cache admin routes: stats, clear, export and import."""
from flask import Blueprint, jsonify, request, current_app
from functools import wraps
import hmac

from app.utils.errors import StoreError

cache_bp = Blueprint('cache', __name__)


def check_admin_secret():
    """Check the X-Admin-Secret header when CACHE_ADMIN_SECRET is configured.

    Without a configured secret the admin endpoints are open.
    Uses hmac.compare_digest for timing-safe comparison.
    """
    secret = current_app.config.get('CACHE_ADMIN_SECRET')
    if not secret:
        return True
    provided = request.headers.get('X-Admin-Secret', '')
    return hmac.compare_digest(provided, secret)


def admin_secret_required(f):
    """Decorator for destructive cache operations."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not check_admin_secret():
            return jsonify({'error': 'Admin secret required'}), 403
        return f(*args, **kwargs)
    return decorated


def _admin():
    return current_app.extensions['cache_admin']


def _store_failure(action, e):
    current_app.logger.error(f"Cache {action} failed: {e.message}")
    return jsonify({'error': f'Failed to {action} cache', 'message': e.message, 'kind': e.kind.value}), e.status_code


@cache_bp.route('/stats', methods=['GET'])
def get_stats():
    """Entry count, usage estimate and a small sample of cached translations."""
    return jsonify(_admin().stats()), 200


@cache_bp.route('/clear', methods=['POST'])
@admin_secret_required
def clear_cache():
    """Remove every cached translation."""
    try:
        return jsonify(_admin().clear()), 200
    except StoreError as e:
        return _store_failure('clear', e)


@cache_bp.route('/export', methods=['GET'])
def export_cache():
    """Versioned snapshot of cached entries (bounded by CACHE_EXPORT_LIMIT)."""
    try:
        return jsonify(_admin().export()), 200
    except StoreError as e:
        return _store_failure('export', e)


@cache_bp.route('/import', methods=['POST'])
@admin_secret_required
def import_cache():
    """Load a snapshot; malformed entries are counted and skipped."""
    payload = request.get_json(silent=True)
    try:
        return jsonify(_admin().import_snapshot(payload)), 200
    except StoreError as e:
        return _store_failure('import', e)
