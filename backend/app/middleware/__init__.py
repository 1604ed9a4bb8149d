# Middleware package init
"""
ScreenShelf Backend - Middleware Package
==========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID first, so every later log line can carry it
    2. Logging records status and duration on the way back out
    3. GZip and CORS are FastAPI's stock middleware
"""
