"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi reconcile-chats
"""

from teamhub import create_app

app = create_app()
