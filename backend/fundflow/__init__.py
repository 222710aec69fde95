# backend/fundflow/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .errors import FundflowError
from .extensions import db, migrate


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.authority import authority_bp
    from .routes.organizations import organizations_bp
    from .routes.roles import roles_bp
    from .routes.memberships import memberships_bp
    from .routes.expense_reports import expense_reports_bp
    from .routes.approvals import approvals_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(authority_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(memberships_bp)
    app.register_blueprint(expense_reports_bp)
    app.register_blueprint(approvals_bp)

    # Routes catch their own domain errors; this covers the read routes that don't
    @app.errorhandler(FundflowError)
    def handle_domain_error(e: FundflowError):
        return jsonify(e.to_dict()), e.status

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
