# backend/brfportal/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging
from .validation import ValidationError


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.invitations import invitations_bp
    from .routes.invoices import invoices_bp
    from .routes.vendors import vendors_bp
    from .routes.organizations import organizations_bp
    from .routes.profile import profile_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(invitations_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(profile_bp)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e), "field": e.field}), 400

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
