"""
Flask application entry point.
Serves the pages, the JSON API and uploaded files.
"""
import asyncio
from datetime import timedelta

from flask import Flask, jsonify, send_from_directory

from config import config
from db import db
from web import api_bp, pages_bp
from utils.logger import get_logger

logger = get_logger("app")


def create_app() -> Flask:
    """Create and configure Flask application."""
    app = Flask(__name__)

    # Configuration
    app.secret_key = config.SECRET_KEY
    app.config["SESSION_COOKIE_SECURE"] = config.SESSION_COOKIE_SECURE
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=7)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

    # Register blueprints
    app.register_blueprint(api_bp)
    app.register_blueprint(pages_bp)

    # Initialize database on first request
    @app.before_request
    def initialize():
        if not getattr(app, "_db_initialized", False):
            config.ensure_data_dir()
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            loop.run_until_complete(db.initialize())
            loop.close()
            setattr(app, "_db_initialized", True)

    @app.route("/health")
    def health():
        return jsonify({"status": "healthy", "service": "vibra-kas"})

    @app.route("/uploads/<path:filename>")
    def uploads(filename: str):
        return send_from_directory(config.UPLOAD_DIR, filename)

    logger.info(
        "Flask application created",
        payment_mode="mock" if config.is_payment_mock_mode() else "live",
        smtp="configured" if config.is_smtp_configured() else "console"
    )
    return app


if __name__ == "__main__":
    # Run in development mode
    create_app().run(
        host="0.0.0.0",
        port=5000,
        debug=True
    )
