"""Allow ``python -m groupmigrate``."""

from .cli import app

app()
