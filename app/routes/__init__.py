"""Routes package for the translation proxy."""


def register_routes(app):
    """Register all route blueprints with the application."""
    from .translate import translate_bp
    from .cache import cache_bp

    app.register_blueprint(translate_bp, url_prefix='/api/translate')
    app.register_blueprint(cache_bp, url_prefix='/api/cache')
