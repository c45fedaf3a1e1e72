"""
academy_api.api

HTTP layer of the academy API.

Responsibilities:
- FastAPI app factory, router modules and the response envelope.
- Dependency wiring for sessions, tenants and outbound HTTP.
"""

# Package marker.
