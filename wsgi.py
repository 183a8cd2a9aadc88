"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi check-deadlines     # cron: daily deadline sweep
"""

from app import create_app

app = create_app()
