"""Flask application factory."""
import os
import traceback

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for product searches
    from pos_client.services.cache_service import init_cache
    init_cache(app)

    # PHP backend client
    from pos_client.services.backend_client import init_backend
    init_backend(app)

    # Checkout sessions
    from pos_client.services.session_store import init_session_store
    init_session_store(app)

    # Prometheus metrics instrumentation
    from pos_client.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    from pos_client.middleware import load_user

    @app.before_request
    def before_request_handler():
        """Load the cashier id for each request."""
        load_user()

    # Error Handlers
    from pos_client.exceptions import PosError

    def _with_feedback(body):
        state = g.get('checkout_session')
        body['feedback'] = state.drain_feedback() if state is not None else []
        return body

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(_with_feedback(error.to_dict())), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify(_with_feedback({'status': 'error', 'message': 'Internal Server Error'})), 500

    # Register blueprints
    from pos_client.blueprints.checkout import checkout_bp
    from pos_client.blueprints.transactions import transactions_bp
    from pos_client.blueprints.inventory import inventory_bp
    from pos_client.blueprints.metrics import metrics_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(metrics_bp)

    app.logger.info(f"BACKEND_BASE_URL={app.config.get('BACKEND_BASE_URL')}")

    return app
