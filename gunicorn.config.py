import os

# gevent workers; threading.Lock in ledger.locks is patched to a greenlet lock
worker_class = "gevent"
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_connections = 1000
timeout = 120
bind = "0.0.0.0:{}".format(os.getenv("PORT", "10000"))
wsgi_app = "wsgi:app"

loglevel = "info"
accesslog = "-"
errorlog = "-"
