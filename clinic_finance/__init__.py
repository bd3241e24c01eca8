"""Flask application factory."""
import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from clinic_finance.database import init_db


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logging.getLogger('clinic_finance').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from clinic_finance.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Error Handlers
    from clinic_finance.exceptions import FinanceError

    @app.errorhandler(FinanceError)
    def handle_finance_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"{error.error_type} [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"{error.error_type} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found', 'error_type': 'NotFound'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed', 'error_type': 'MethodNotAllowed'}), 405

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description, 'error_type': error.name}), error.code

        app.logger.exception(f"Unhandled Exception on {request.method} {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error', 'error_type': 'InternalError'}), 500

    # Register blueprints
    from clinic_finance.blueprints.financial import financial_bp
    from clinic_finance.blueprints.metrics import metrics_bp

    app.register_blueprint(financial_bp)
    app.register_blueprint(metrics_bp)

    @app.route('/health')
    def health():
        """Liveness probe with a database round trip."""
        from sqlalchemy import text
        from clinic_finance.database import get_session

        try:
            get_session().execute(text('SELECT 1'))
            database = 'ok'
        except Exception as e:
            app.logger.error(f"Health check database error: {e}")
            database = 'unavailable'

        status_code = 200 if database == 'ok' else 503
        return jsonify({'status': 'ok' if database == 'ok' else 'degraded', 'database': database}), status_code

    # Register CLI commands
    from clinic_finance.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
