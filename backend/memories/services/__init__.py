# Services package init
"""
Memories Backend: Services Layer
=================================

What:  The collaborators a PageController is wired with, plus the image and
       file helpers the routes use directly.

Service Inventory:
    - base.py:            DocumentStore, LetterTransport, TemplateSource ABCs
    - page_service.py:    PageStore, pages in PostgreSQL (DocumentStore)
    - letter_service.py:  LetterService, flattened letters (LetterTransport)
    - file_service.py:    FileService, uploads, storage, templates (TemplateSource)
    - image_service.py:   ImageService, natural size of picked images

Request-scoped services (PageStore, LetterService) take the request's
AsyncSession in their constructor. Stateless ones are module singletons.
"""
