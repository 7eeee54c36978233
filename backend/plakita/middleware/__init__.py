"""
Plakita Backend — Middleware Package
======================================

Middleware chain (outermost first, as registered in main.py):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Route

    Request ID runs first so the access log line and a rate-limit rejection
    both carry the correlation ID.
"""
