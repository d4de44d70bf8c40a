"""ASGI entrypoint for external hosts and auto-discovery tools.

Some CLIs/buildpacks look for a module-level `app` in a well-known file
(e.g. `app.py`); `gunicorn app:app` and `uvicorn app:app` both work.
"""

from cia.application import configure

app = configure()
