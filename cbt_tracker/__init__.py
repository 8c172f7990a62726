"""
Application factory for the CBT Mood Tracker.

This module provides a function to create and configure the Flask
application. All extensions (SQLAlchemy, Migrate, JWT) are initialised
here, along with the client used to analyse ABC thought records.
Individual blueprints for the patient and therapist parts of the API
are registered inside the factory to allow for modular development and
unit testing.

Environment variables control the database connection, the secret key
and the language model settings. In production set ``DATABASE_URL``,
``JWT_SECRET_KEY`` and ``OPENAI_API_KEY``. A default configuration is
provided for development, using SQLite when no database URL is
available.
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta

import click
from flask import Flask
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager

# instantiate extensions without binding them to an app yet.  They will
# be bound in create_app().
from .db import db  # use shared db object from db.py
migrate = Migrate()
jwt = JWTManager()


def create_app(test_config: dict | None = None) -> Flask:
    """Create and configure a Flask application.

    Parameters
    ----------
    test_config: dict | None, optional
        Optional configuration overrides used when running tests. An
        ``ABC_ANALYZER`` entry replaces the language model client.

    Returns
    -------
    Flask
        A configured Flask application instance.
    """
    app = Flask(__name__)

    app.config.update(
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///cbt_tracker.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        JWT_SECRET_KEY=os.environ.get("JWT_SECRET_KEY", "please-change-this-secret-key"),
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(days=1),
        OPENAI_MODEL=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
        OPENAI_TIMEOUT_S=float(os.environ.get("OPENAI_TIMEOUT_S", "30")),
        OPENAI_MAX_RETRIES=int(os.environ.get("OPENAI_MAX_RETRIES", "0")),
        ABC_PAGE_SIZE=10,
        MOOD_ENTRY_LIMIT=30,
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialise extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    from .services.analysis_service import OpenAIAbcAnalyzer
    app.extensions["abc_analyzer"] = app.config.get("ABC_ANALYZER") or OpenAIAbcAnalyzer(
        model=app.config["OPENAI_MODEL"],
        timeout=app.config["OPENAI_TIMEOUT_S"],
        max_retries=app.config["OPENAI_MAX_RETRIES"],
    )

    # Register custom error handlers, including the JWT failure callbacks
    from .errors import register_error_handlers, register_jwt_callbacks
    register_error_handlers(app)
    register_jwt_callbacks(jwt)

    # Register blueprints. Importing here avoids circular imports.
    from .routes.auth import auth_bp
    from .routes.mood import mood_bp
    from .routes.abc_schemas import abc_schemas_bp
    from .routes.exercises import exercises_bp
    from .routes.templates import templates_bp
    from .routes.therapist import therapist_bp
    from .routes.patient import patient_bp

    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(mood_bp, url_prefix="/api")
    app.register_blueprint(abc_schemas_bp, url_prefix="/api")
    app.register_blueprint(exercises_bp, url_prefix="/api")
    app.register_blueprint(templates_bp, url_prefix="/api")
    app.register_blueprint(therapist_bp, url_prefix="/api")
    app.register_blueprint(patient_bp, url_prefix="/api")

    @app.cli.command("seed-catalog")
    def seed_catalog_command() -> None:
        """Insert the reference exercise catalog (safe to re-run)."""
        from .services.exercise_service import seed_catalog
        added = seed_catalog()
        click.echo(f"Catalog seeded ({added} new exercises).")

    @app.route("/api/health")
    def health_check() -> dict[str, str]:
        """Return a simple health check response."""
        return {"status": "ok"}

    return app
