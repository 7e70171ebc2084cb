"""
Blueprint registration for the Student Progress Dashboard.

All blueprints are registered without URL prefixes; routes carry their own
/api/... paths.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.student import bp as student_bp
    from blueprints.admin import bp as admin_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(admin_bp)
