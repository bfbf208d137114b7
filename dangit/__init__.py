"""
DANGIT Backend — Application Package
======================================

What: Capture service for screenshots, links and notes, enriched with AI metadata.
Who:  Imported by uvicorn (`dangit.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependency
    ├─────────────────────────────────────┤
    │  Services (Pipeline + Gateways)     │  ← resolve → extract → persist
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Collaborators (model client, identity provider, HTTP client, blob store)
    are built once into an AppContext and injected, never imported as globals.
"""

__version__ = "2.3.0"
