"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from promoquote.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from promoquote.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Error Handlers
    from promoquote.exceptions import PromoQuoteError

    @app.errorhandler(PromoQuoteError)
    def handle_promoquote_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"PromoQuoteError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"PromoQuoteError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code != 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code

        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from promoquote.blueprints.quotes import quotes_bp
    from promoquote.blueprints.promotions import promotions_bp
    from promoquote.blueprints.metrics import metrics_bp

    app.register_blueprint(quotes_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from promoquote.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
