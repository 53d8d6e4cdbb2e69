"""
Gunicorn Configuration

Uvicorn workers under Gunicorn. Each worker owns its own database pool, so
total connections to the store are workers * (POSTGRES_POOL_SIZE +
POSTGRES_MAX_OVERFLOW); keep WORKERS modest against a shared read replica.
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 512

# Worker processes
workers = int(os.getenv("WORKERS", 4))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 5000
max_requests_jitter = 500
# Longer than DASHBOARD_QUERY_TIMEOUT_SECONDS so slow aggregations fail as 503, not worker kills
timeout = int(os.getenv("WORKER_TIMEOUT", 60))
keepalive = 5
graceful_timeout = 30

proc_name = "sr-dashboard-api"

# Logging: application records go through structlog on stdout
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = None


def when_ready(server):
    server.log.info("SR dashboard ready on %s with %s workers", bind, workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted (timeout %ss)", worker.pid, timeout)
