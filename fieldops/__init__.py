from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
import logging
import os

db = SQLAlchemy()


def create_app(config_name=None, test_config=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    from fieldops.config import config
    app.config.from_object(config.get(config_name, config['default']))
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})

    from fieldops.extensions import limiter, events
    limiter.init_app(app)
    events.init_app(app)

    # Register blueprints
    from fieldops.blueprints import agent_bp, admin_bp, bookings_bp, profiles_bp

    app.register_blueprint(agent_bp, url_prefix='/api/agent')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(bookings_bp, url_prefix='/api/bookings')
    app.register_blueprint(profiles_bp, url_prefix='/api/profiles')

    from fieldops.errors import DispatchError

    @app.errorhandler(DispatchError)
    def dispatch_error_handler(e):
        return jsonify({'error': e.to_dict()}), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({
            'error': {'code': 'rate.limited', 'message': 'Too many requests. Please try again later.'}
        }), 429

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy', 'service': 'fieldops'}, 200

    from fieldops.scheduler import register_cli, init_scheduler
    register_cli(app)

    with app.app_context():
        from fieldops import models  # noqa: F401  (register tables)
        db.create_all()

    init_scheduler(app)

    return app
