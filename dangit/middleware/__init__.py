# Middleware package init
"""
DANGIT Backend — Middleware Package
=====================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Route

    - Request ID wraps everything so even 429s carry X-Request-ID
    - Logging records the final status, including rate-limit rejections
    - Rate Limit rejects before any handler or database work runs
"""
