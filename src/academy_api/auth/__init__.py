"""
academy_api.auth

Who is calling, and what they may touch.

Responsibilities:
- Access token minting and validation.
- FastAPI dependencies for the current user, admin-only routes and environment management rights.
"""

# Package marker.
