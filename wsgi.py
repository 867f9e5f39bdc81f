"""Gunicorn entry point: ``gunicorn "wsgi:app"``."""

import os

# production config unless the host says otherwise
os.environ.setdefault("APP_ENV", "production")

from zonta import create_app  # noqa: E402

app = create_app()
