"""Error handlers for the application. Every error leaves as JSON."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from userbridge.core.errors import ServiceError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(ServiceError)
    def service_error(error):
        """Render a structured workflow failure."""
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({"error": "Bad Request", "message": error.description or "Bad request"}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({"error": "Forbidden", "message": "Insufficient permissions"}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        if isinstance(error, HTTPException):
            return jsonify({"error": error.name, "message": error.description}), error.code

        # Tracebacks go to the log only
        app.logger.error("Unhandled exception: %s", error, exc_info=True)
        return jsonify({"error": "Internal", "message": "An unexpected error occurred"}), 500
