# Middleware package init
"""
Memories Backend: Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Rate Limit] → [Logging] → [GZip] → [CORS] → Route Handler

    Responses pass back through the chain in reverse, so the request id is
    on the response headers and the access log sees the final status code
    and duration.
"""
