import multiprocessing
import os

wsgi_app = "TaskFlow.wsgi:application"

# Server socket
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")

# Worker processes
workers = int(os.environ.get("GUNICORN_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "gthread"
threads = int(os.environ.get("GUNICORN_THREADS", "2"))

# Logging: access lines to stdout, application logs use the JSON formatter from settings.LOGGING
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()

# Timeouts
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "60"))
keepalive = 5
