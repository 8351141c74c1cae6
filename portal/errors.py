"""
Portal exceptions and their JSON rendering
"""
from flask import jsonify


class PortalError(Exception):
    """Base error carrying an HTTP status and a user-facing message"""
    status_code = 400

    def __init__(self, message, errors=None, **extra):
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.message}
        if self.errors:
            payload['errors'] = self.errors
        payload.update(self.extra)
        return payload


class ValidationError(PortalError):
    status_code = 400


class PermissionDenied(PortalError):
    status_code = 403


class NotFound(PortalError):
    status_code = 404


class DuplicateSubmission(PortalError):
    status_code = 409


class EditWindowClosed(PortalError):
    status_code = 403


class PlanLimitReached(PortalError):
    status_code = 403


class SubscriptionRequired(PortalError):
    status_code = 402


class BillingError(PortalError):
    status_code = 502


def register_error_handlers(app):
    """Render PortalError subclasses as JSON"""

    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        if error.status_code >= 500:
            app.logger.error('%s: %s', type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405
