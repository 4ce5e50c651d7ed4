# Error taxonomy shared by the coordinators, REST blueprints and socket handlers

import logging

from flask import jsonify

logger = logging.getLogger(__name__)


class CollabError(Exception):
    # Base class for failures that are reported back to the caller
    status_code = 400
    code = 'error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'success': False, 'error': self.message, 'code': self.code}
        payload.update(self.details)
        return payload


class AuthenticationError(CollabError):
    # Missing, invalid or expired credential
    status_code = 401
    code = 'authentication_error'

    MISSING = 'missing'
    EXPIRED = 'expired'
    INVALID = 'invalid'
    USER_NOT_FOUND = 'user_not_found'

    def __init__(self, message, reason):
        super().__init__(message, reason=reason)
        self.reason = reason


class AuthorizationError(CollabError):
    status_code = 403
    code = 'authorization_error'


class NotFoundError(CollabError):
    status_code = 404
    code = 'not_found'


class ValidationError(CollabError):
    status_code = 400
    code = 'validation_error'


class CapacityError(CollabError):
    status_code = 409
    code = 'capacity_error'


class ConcurrencyError(CollabError):
    # Optimistic write kept losing against concurrent writers
    status_code = 409
    code = 'concurrency_error'


def register_error_handlers(flask_app):
    # JSON responses for coordinator failures and unexpected errors
    from collabhub.extensions import db

    @flask_app.errorhandler(CollabError)
    def _handle_collab_error(error):
        logger.info("[API ERROR] %s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @flask_app.errorhandler(404)
    def _handle_not_found(error):
        return jsonify({'success': False, 'error': 'Not found', 'code': 'not_found'}), 404

    @flask_app.errorhandler(405)
    def _handle_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed', 'code': 'method_not_allowed'}), 405

    @flask_app.errorhandler(500)
    def _handle_internal_error(error):
        db.session.rollback()
        logger.error("[API ERROR] Unhandled error: %s", error)
        return jsonify({'success': False, 'error': 'Internal server error', 'code': 'internal_error'}), 500
