import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import Intern, Submission  # noqa: E402,F401


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning("[CONFIG] %s=%r is not an integer; using %s", name, raw, default)
        return default


def create_app():
    app = Flask(__name__, template_folder="templates")
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "certflow")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "certflow")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 50 * 1024 * 1024

    organization = os.getenv("CERT_ORGANIZATION", "Athenura")
    app.config["CERT_ORGANIZATION"] = organization
    app.config["CERT_TEMPLATE_PATH"] = os.getenv(
        "CERT_TEMPLATE_PATH",
        os.path.join("assets", "templates", "certificate-template.png"),
    )
    app.config["CERT_NAME_FONT_PATH"] = os.getenv(
        "CERT_NAME_FONT_PATH",
        os.path.join("assets", "fonts", "Rancho-Regular.ttf"),
    )
    app.config["CERT_NUMBER_PREFIX"] = os.getenv("CERT_NUMBER_PREFIX", "100")
    app.config["CERT_NUMBER_MAX_ATTEMPTS"] = _int_env("CERT_NUMBER_MAX_ATTEMPTS", 50)

    app.config["BREVO_API_URL"] = os.getenv(
        "BREVO_API_URL", "https://api.brevo.com/v3/smtp/email"
    )
    app.config["BREVO_API_KEY"] = os.getenv("BREVO_API_KEY")
    app.config["MAIL_FROM_EMAIL"] = os.getenv("FROM_EMAIL")
    app.config["MAIL_FROM_NAME"] = os.getenv("FROM_NAME", organization)
    app.config["MAIL_TIMEOUT_SECONDS"] = _int_env("MAIL_TIMEOUT_SECONDS", 20)

    db.init_app(app)

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.feedback import bp as feedback_bp
    from .routes.verify import bp as verify_bp

    app.register_blueprint(feedback_bp)
    app.register_blueprint(verify_bp)

    @app.errorhandler(404)
    def not_found(_exc):
        return jsonify({"success": False, "message": "Not found"}), 404

    return app


def asset_path(app: Flask, configured: str) -> str:
    """Resolve a configured asset path against the application root."""
    if os.path.isabs(configured):
        return configured
    return os.path.join(app.root_path, configured)
