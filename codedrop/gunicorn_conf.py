import os

# Gunicorn config variables
wsgi_app = "codedrop.main:create_app()"
bind = os.getenv("BIND", "127.0.0.1:8000")
# Attempt records live in process memory, so one worker keeps the
# brute-force limit per client instead of per worker.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 120
keepalive = 5
accesslog = os.getenv("ACCESS_LOG", "-")
errorlog = os.getenv("ERROR_LOG", "-")
loglevel = "info"
daemon = False
