"""
Student Progress Dashboard — Flask Web Application

Students log daily goals, reflections and quiz results; admins see
aggregated KPIs, at-risk students and badges.
"""

from __future__ import annotations

import os
from typing import Any

import click
from flask import Flask, Response

import database
from auth import auth_bp, login_manager
from blueprints import register_blueprints
from extensions import limiter


def _load_config(app: Flask, overrides: dict[str, Any] | None) -> None:
    """Test overrides win outright; otherwise FLASK_ENV picks a config class."""
    if overrides is not None:
        app.config.update(overrides)
    else:
        from config import config_by_name
        cfg = config_by_name.get(os.environ.get("FLASK_ENV", "development"), config_by_name["development"])
        if hasattr(cfg, "validate"):
            cfg.validate()
        app.config.from_object(cfg)
    app.secret_key = app.config.get("SECRET_KEY", "dev-key-change-in-production")


def _register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Remove the demo student first.")
    def seed_demo_command(reset: bool) -> None:
        """Create the demo student and sample entries."""
        from seed_demo_data import clear_demo, seed
        database.init_db()
        database.run_migrations()
        db = database.get_db()
        if reset:
            clear_demo(db)
            click.echo("[Seed] Demo data cleared.")
        click.echo(f"[Seed] Done: {seed(db)}")


def _add_response_headers(response: Response, hsts: bool) -> Response:
    headers = response.headers
    headers["X-Content-Type-Options"] = "nosniff"
    headers["X-Frame-Options"] = "DENY"
    headers["Referrer-Policy"] = "no-referrer"
    headers["Cache-Control"] = "no-store"
    if hsts:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    _load_config(app, test_config)

    from logging_config import init_logging
    init_logging(app)

    database.init_app(app)

    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    login_manager.init_app(app)
    app.register_blueprint(auth_bp)
    register_blueprints(app)
    _register_cli(app)

    app.after_request(lambda response: _add_response_headers(response, hsts=not app.debug))

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=int(os.environ.get("PORT", "5000")))
