import os

from cia.configuration import env_name
from cia.constants import SERVER_HOST, SERVER_PORT

# gunicorn -c gunicorn.conf.py app:app
host = os.environ.get(env_name(SERVER_HOST)) or "0.0.0.0"
port = os.environ.get("PORT") or os.environ.get(env_name(SERVER_PORT)) or "8000"
bind = f"{host}:{port}"

workers = int(os.environ.get("WEB_CONCURRENCY") or 2)
timeout = int(os.environ.get("GUNICORN_TIMEOUT") or 120)
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT") or 30)

# Requests are logged by the app's own middleware.
worker_class = os.environ.get("GUNICORN_WORKER_CLASS") or "uvicorn.workers.UvicornWorker"
