# Services package init
"""
DANGIT Backend — Services Layer
=================================

Capture pipeline:
    - content.py:         ImageContent | UrlContent | TextContent and parse_content()
    - resolver.py:        page scrape, link preview, routing to social.py
    - social.py:          three-tier Instagram resolver
    - extractor.py:       model prompts per variant, post-conditions, fallbacks
    - normalizer.py:      model reply → JSON object
    - llm_base.py:        LLMService interface
    - gemini_service.py:  Gemini implementation with retry and circuit breaker
    - blob_store.py:      per-owner screenshot storage
    - orchestrator.py:    resolve → extract → persist

Everything else:
    - identity.py:          bearer credential → verified email
    - item_service.py:      ownership-scoped saved_items queries
    - feedback_service.py:  feedback, feature suggestions, voting

Services never touch HTTP objects. Collaborators are constructed once in
AppContext (dependencies.py) and passed in, never imported as globals.
"""
