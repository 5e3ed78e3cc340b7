# Routes package init
"""
Memories Backend: API Routes Package
=====================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource.

Route Inventory:
    - pages.py:    /api/pages...             (create, edit, snapshot, send)
    - letters.py:  GET /api/letters          (received letters)
                   GET /api/files/{path}     (stored images)
    - layout.py:   POST /api/layout/...      (viewport fit, resize math)
    - health.py:   GET /health               (service health check)

Routes stay thin: they parse the request, open a PageController session
on the stored document, call it, and shape the response. Editing rules
live in memories.canvas, persistence and transport in memories.services.
"""
