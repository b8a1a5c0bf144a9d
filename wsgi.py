"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask seed-workflow-templates
    gunicorn wsgi:app
"""

from tracker import create_app

app = create_app()
