# Routes package init
"""
DANGIT Backend — API Routes Package
=====================================

Route Inventory (all under /api unless noted):
    - health.py:    GET  /health, /api/health
    - analysis.py:  POST /analyze, /scrape, /link-preview, /scrape-social
    - content.py:   POST /process-content, /storage/upload-image
                    GET  /files/{path}
    - items.py:     GET  /saved-items, /user-stats, /item/{itemId}
                    PATCH /toggle-completion, /update-title
                    DELETE /delete-item
    - feedback.py:  GET/POST /feedback, GET/POST /features, POST /features/vote

Routes stay thin: read the body, resolve the owner through
get_current_owner, call one service, wrap the result in its envelope.
"""
