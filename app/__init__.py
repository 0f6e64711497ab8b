from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
import atexit
import logging
import os
from dotenv import load_dotenv

from app.services.cache_admin import CacheAdmin
from app.services.cache_store import build_cache_store
from app.services.reconciler import BatchReconciler, CacheCounters
from app.services.translation import ClaudeTranslator
from app.utils.errors import TranslationProxyError

load_dotenv()

limiter = Limiter(key_func=get_remote_address, storage_uri='memory://')
logger = logging.getLogger(__name__)


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name}={value!r} is not an integer, using {default}")
        return default


def _env_float(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name}={value!r} is not a number, using {default}")
        return default


def load_config(config_name):
    """Read settings from the environment (.env is loaded at import)."""
    testing = config_name == 'testing'
    return {
        'TESTING': testing,
        'CACHE_BACKEND': os.getenv('CACHE_BACKEND', 'memory' if testing else 'auto'),
        'UPSTASH_REDIS_REST_URL': os.getenv('UPSTASH_REDIS_REST_URL', ''),
        'UPSTASH_REDIS_REST_TOKEN': os.getenv('UPSTASH_REDIS_REST_TOKEN', ''),
        'CACHE_TTL_SECONDS': _env_int('CACHE_TTL_SECONDS', 604800),  # 7 days
        'CACHE_MAX_ENTRIES': _env_int('CACHE_MAX_ENTRIES', 10000),
        'CACHE_EXPORT_LIMIT': _env_int('CACHE_EXPORT_LIMIT', 1000),
        'CACHE_IMPORT_LIMIT': _env_int('CACHE_IMPORT_LIMIT', 1000),
        'CACHE_STATS_SAMPLE': _env_int('CACHE_STATS_SAMPLE', 5),
        'CACHE_LOOKUP_WORKERS': _env_int('CACHE_LOOKUP_WORKERS', 8),
        'CACHE_HTTP_TIMEOUT': _env_float('CACHE_HTTP_TIMEOUT', 2.0),
        'CACHE_ADMIN_SECRET': os.getenv('CACHE_ADMIN_SECRET', ''),
        'TRANSLATION_MODEL': os.getenv('TRANSLATION_MODEL', 'claude-3-haiku-20240307'),
        'TRANSLATION_MAX_TOKENS': _env_int('TRANSLATION_MAX_TOKENS', 4000),
        'TRANSLATION_TIMEOUT': _env_float('TRANSLATION_TIMEOUT', 60.0),
        'ANTHROPIC_API_URL': os.getenv('ANTHROPIC_API_URL', 'https://api.anthropic.com/v1/messages'),
        'TRANSLATE_RATE_LIMIT': os.getenv('TRANSLATE_RATE_LIMIT', '60 per minute'),
        'RATELIMIT_ENABLED': not testing and os.getenv('RATELIMIT_ENABLED', 'true').lower() in ('true', '1', 'yes'),
    }


def create_app(config_name='development', overrides=None):
    app = Flask(__name__)

    # Config
    app.config.update(load_config(config_name))
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    CORS(app, send_wildcard=True)
    limiter.init_app(app)

    # Cache wiring: one store per process, shared by every request
    store = build_cache_store(app.config)
    counters = CacheCounters()
    app.extensions['translation_cache'] = store
    app.extensions['cache_reconciler'] = BatchReconciler(
        store,
        default_ttl=app.config['CACHE_TTL_SECONDS'],
        max_workers=app.config['CACHE_LOOKUP_WORKERS'],
        counters=counters,
    )
    app.extensions['cache_admin'] = CacheAdmin(
        store,
        counters=counters,
        sample_size=app.config['CACHE_STATS_SAMPLE'],
        export_limit=app.config['CACHE_EXPORT_LIMIT'],
        import_ttl=app.config['CACHE_TTL_SECONDS'],
        import_limit=app.config['CACHE_IMPORT_LIMIT'],
    )
    app.extensions['translator_factory'] = lambda api_key: ClaudeTranslator(
        api_key,
        model=app.config['TRANSLATION_MODEL'],
        max_tokens=app.config['TRANSLATION_MAX_TOKENS'],
        timeout=app.config['TRANSLATION_TIMEOUT'],
        api_url=app.config['ANTHROPIC_API_URL'],
    )
    atexit.register(store.close)

    register_error_handlers(app)

    # Register routes
    from app.routes import register_routes
    register_routes(app)

    # Health check
    @app.route('/health', methods=['GET'])
    def health():
        return {'status': 'ok', 'cache': store.cache_type, 'cacheEnabled': store.enabled}, 200

    return app


def register_error_handlers(app):
    @app.errorhandler(TranslationProxyError)
    def handle_proxy_error(e):
        app.logger.warning(f"{e.kind.value} error: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description, 'kind': 'http'}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception(f"Unhandled error: {e}")
        return jsonify({'error': 'Internal server error', 'kind': 'internal'}), 500
