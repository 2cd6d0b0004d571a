"""
CastEngine Test Suite

Test Categories:
- unit/: Fast, isolated tests of the cursor, controller, store and dispatcher
- integration/: HTTP API tests through the FastAPI test client
- fixtures/: Fakes and data factories shared by both
"""
