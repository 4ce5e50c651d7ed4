# Flask application factory

import logging

from flask import Flask, g, jsonify

import config
from collabhub.extensions import db, socketio, login_manager
from collabhub.errors import AuthenticationError, register_error_handlers
from collabhub.functions import setup_logging

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    # Create and configure Flask application; overrides win over config.py
    flask_app = Flask(__name__)

    # Load config
    flask_app.config.update(config.as_dict())
    if overrides:
        flask_app.config.update(overrides)

    setup_logging(flask_app.config['LOG_LEVEL'])

    # Socket handlers are queued on the SocketIO object and bound by init_app
    import collabhub.sockets  # noqa

    # Initialize extensions
    db.init_app(flask_app)
    socketio.init_app(
        flask_app,
        async_mode=flask_app.config['SOCKETIO_ASYNC_MODE'],
        cors_allowed_origins=flask_app.config['CORS_ALLOWED_ORIGINS']
    )
    login_manager.init_app(flask_app)

    from collabhub.services import get_services, init_services
    init_services(flask_app, socketio)

    # Bearer tokens authenticate REST calls; there are no cookie sessions
    @login_manager.request_loader
    def load_user_from_request(req):
        services = get_services()
        credential = services.resolver.extract_credential(None, req.headers)
        try:
            _, user = services.resolver.resolve(credential)
        except AuthenticationError as e:
            g.auth_error = e
            return None
        return user

    # Return JSON 401 with the rejection reason
    @login_manager.unauthorized_handler
    def _unauthorized():
        error = g.get('auth_error') or AuthenticationError(
            'Authentication error: No token provided', AuthenticationError.MISSING
        )
        return jsonify(error.to_dict()), 401

    register_error_handlers(flask_app)

    # Register blueprints
    from collabhub.routes import auth_bp, main_bp, chats_bp, code_bp
    flask_app.register_blueprint(auth_bp)
    flask_app.register_blueprint(main_bp)
    flask_app.register_blueprint(chats_bp)
    flask_app.register_blueprint(code_bp)

    # Create database tables
    with flask_app.app_context():
        db.create_all()

    logger.info("[APP] CollabHub initialized (async_mode=%s)", flask_app.config['SOCKETIO_ASYNC_MODE'])
    return flask_app
