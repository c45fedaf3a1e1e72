"""
academy_api.services

Service-layer package.

Responsibilities:
- Own transaction boundaries for multi-step operations.
- Hold the domain computations (progress, engagement scoring, search ranking, archival).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services take an AsyncSession plus settings/clients in the constructor so tests can
# swap the HTTP transport without touching routers.
