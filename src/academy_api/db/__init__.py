"""
academy_api.db

Persistence for tenants, courses, learning records, commerce, live sessions and chat.

Responsibilities:
- ORM models split by domain, engine/session setup, pagination and repositories.
"""

# Package marker.
