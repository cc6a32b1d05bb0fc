"""
WSGI entry point.

Usage:
    APP_ENV=production gunicorn wsgi:app
    flask --app wsgi run
"""

from carbonaccess import create_app

app = create_app()
