# Routes package init
"""
ScreenShelf Backend - API Routes Package
==========================================

What:  HTTP route handlers.

Route Inventory:
    - screenshots.py:  POST {SCREENSHOTS_PREFIX}/             (upload)
                       GET  {SCREENSHOTS_PREFIX}/             (list)
                       GET  {SCREENSHOTS_PREFIX}/image/{id}   (fetch bytes)
    - health.py:       GET  /health

Routes stay thin: pull data out of the request, call a service from the
registry, return its result. Failures are raised as typed exceptions and
formatted by the handlers in app.main.
"""
