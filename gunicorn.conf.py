"""
Gunicorn configuration for the Rewards Hub API.

Usage:
    gunicorn -c gunicorn.conf.py run:app
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Sync workers; Shopify calls during install are short and bounded by SHOPIFY_HTTP_TIMEOUT
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = int(os.getenv('GUNICORN_TIMEOUT', '60'))
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'rewardhub'
