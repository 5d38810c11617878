"""
Server modules for the map snapshot service.

This package contains the FastAPI router, the headless browser pool, the
page readiness handshake and the render orchestration that ties them together.

Author: Map Snapshot maintainers
Date: 2026-10-14
"""
