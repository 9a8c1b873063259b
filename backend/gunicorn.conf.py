"""
Gunicorn settings for running the relay behind uvicorn workers.

    cd backend && gunicorn -c gunicorn.conf.py support_relay.main:app

In-memory sessions live inside one worker, so more than one worker
requires SESSION_STORE_TYPE=redis.
"""
import os
import multiprocessing

_store_type = os.getenv('SESSION_STORE_TYPE', 'in_memory').lower()
_default_workers = multiprocessing.cpu_count() * 2 + 1 if _store_type == 'redis' else 1

bind = f"{os.getenv('API_HOST', '0.0.0.0')}:{os.getenv('PORT', os.getenv('API_PORT', '8000'))}"
workers = int(os.getenv('WEB_CONCURRENCY', _default_workers))
worker_class = "uvicorn.workers.UvicornWorker"

# Completion calls can take most of a minute
timeout = int(os.getenv('GUNICORN_TIMEOUT', '90'))
graceful_timeout = 30
keepalive = 5

# Recycle workers to bound slow leaks
max_requests = 2000
max_requests_jitter = 200

accesslog = "-"
errorlog = "-"
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus "%(a)s"'

proc_name = 'support-relay'


def on_starting(server):
    server.log.info(f"Starting support-relay: {workers} worker(s), session store '{_store_type}'")
    if workers > 1 and _store_type != 'redis':
        server.log.warning("Multiple workers with the in-memory store will not share sessions")


def post_fork(server, worker):
    server.log.info(f"Worker spawned (pid: {worker.pid})")


def worker_abort(worker):
    """SIGABRT, usually a request exceeding the timeout."""
    worker.log.warning(f"Worker {worker.pid} aborted")
