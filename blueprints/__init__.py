"""
Blueprint registration for Spelling Classroom.

All blueprints are registered without URL prefixes; every route spells out
its full ``/api/...`` path.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.classrooms import bp as classrooms_bp
    from blueprints.students import bp as students_bp
    from blueprints.parents import bp as parents_bp
    from blueprints.words import bp as words_bp
    from blueprints.games import bp as games_bp
    from blueprints.reports import bp as reports_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(classrooms_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(parents_bp)
    app.register_blueprint(words_bp)
    app.register_blueprint(games_bp)
    app.register_blueprint(reports_bp)
