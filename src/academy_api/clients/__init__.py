"""
academy_api.clients

Outbound HTTP clients for the services the academy depends on.

Responsibilities:
- Geo-IP lookups, certificate rendering, marketplace proxying.
"""

# Package marker.
