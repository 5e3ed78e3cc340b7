"""
Memories Backend: Application Package Initializer
==================================================

What: Marks the `memories` directory as a Python package.
Who:  Imported by uvicorn, Alembic and pytest.

Architecture Note:
    The backend is layered like this:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (Collaborators)        │  ← storage, letters, images
    ├─────────────────────────────────────┤
    │   Canvas (Editor Core, no I/O)      │  ← document, transforms, render
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The canvas package never imports from services or routes. Services plug
    into the PageController through the interfaces in services/base.py.
"""

__version__ = "1.0.0"
