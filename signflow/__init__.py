# signflow/__init__.py
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import settings

# initialisation de la base de donnees
db = SQLAlchemy()

from .routes import envelopes_bp, files_bp, register_error_handlers, sign_bp  # noqa: E402

def init_db(app):
    db.init_app(app)
    with app.app_context():
        db.create_all()

def configure_logging(app):
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app(overrides=None):
    app = Flask(__name__)
    # chargement de la configuration
    app.config.from_mapping(settings.model_dump())
    app.config["BASE_URL"] = str(settings.BASE_URL).rstrip("/")
    if overrides:
        app.config.update(overrides)
    configure_logging(app)
    # init db
    init_db(app)
    # enregistrement des blueprints
    app.register_blueprint(envelopes_bp, url_prefix="/api/envelopes")
    app.register_blueprint(sign_bp, url_prefix="/api/sign")
    app.register_blueprint(files_bp, url_prefix="/files")
    register_error_handlers(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    return app
