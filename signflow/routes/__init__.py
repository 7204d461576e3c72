# signflow/routes/__init__.py
import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException
from ..errors import WorkflowError
from .envelopes import envelopes_bp
from .files import files_bp
from .sign import sign_bp

logger = logging.getLogger(__name__)

def register_error_handlers(app):
    @app.errorhandler(WorkflowError)
    def handle_workflow_error(e):
        return jsonify({"error": str(e)}), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"Erreur inattendue: {e}")
        return jsonify({"error": "Server error"}), 500

__all__ = ["envelopes_bp", "files_bp", "sign_bp", "register_error_handlers"]
